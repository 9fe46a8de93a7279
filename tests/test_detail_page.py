"""Tests for rendered detail-page parsing."""

import pytest

from ftportal.ingest.detail_page import first_label_value, parse_detail_html

TOPIC_HTML = """
<html>
<head>
  <title>HORIZON-CL5-2025-D3-01 | Funding &amp; Tenders</title>
  <script type="application/ld+json">{"@type": "Thing", "name": "small"}</script>
  <script type="application/ld+json">not json at all</script>
</head>
<body>
  <h1>Renewable energy topic</h1>
  <dl>
    <dt>Programme</dt><dd>Horizon Europe (HORIZON)</dd>
    <dt>Type of action:</dt><dd>HORIZON-RIA</dd>
    <dt>Empty</dt><dd></dd>
  </dl>
  <section>
    <table>
      <tr><th>Deadline date</th><td>15 March 2026</td></tr>
      <tr><th>Planned opening date</th><td>10/11/2025</td></tr>
      <tr><td>only one cell</td></tr>
    </table>
  </section>
  <h2>Expected Outcome</h2>
  <p>short</p>
  <div>Projects are expected to contribute to a resilient and decarbonised European energy system.</div>
  <h2>Scope</h2>
  <p>Proposals should address the integration of renewable energy into district heating networks.</p>
  <a href="/docs/annex-1.pdf">Annex 1 - Work programme</a>
  <a href="#top">Top</a>
  <a href="mailto:x@example.org">Mail</a>
</body>
</html>
"""

TENDER_HTML = """
<html><head>
<script type="application/ld+json">
{"@context": "https://schema.org", "@graph": [
  {"@type": "GovernmentService", "name": "Framework contract for IT services",
   "identifier": "EC-DIGIT/2025/OP/0012",
   "publisher": {"name": "European Commission, DG DIGIT"},
   "address": {"addressCountry": "BE", "addressLocality": "Brussels"},
   "datePublished": "2025-02-10",
   "validThrough": "2025-03-20T16:00:00+01:00",
   "additionalProperty": [{"name": "CPV code", "value": "72000000"}]}
]}
</script>
</head><body>
<dl>
  <dt>Reference</dt><dd>DIGIT/2025/OP/0012</dd>
  <dt>Procedure type</dt><dd>Open procedure</dd>
  <dt>Estimated value</dt><dd>EUR 2.5 million</dd>
  <dt>Lots</dt><dd>3 lots</dd>
</dl>
<a href="https://etendering.test/docs/spec.pdf">Tender specifications</a>
<a href="https://etendering.test/docs/annex.pdf">Annex II - Document</a>
<a href="https://esubmission.test/submit/123">Submit your tender</a>
</body></html>
"""


class TestParseDetailHtml:
    """Tests for parse_detail_html."""

    @pytest.fixture
    def page(self):
        return parse_detail_html(TOPIC_HTML, "https://portal.test/topic-details/HORIZON-CL5-2025-D3-01")

    def test_title_from_title_tag(self, page):
        assert page.title == "HORIZON-CL5-2025-D3-01 | Funding & Tenders"

    def test_surface_title_wins(self):
        page = parse_detail_html(TOPIC_HTML, "https://portal.test/x", page_title="Rendered title")
        assert page.title == "Rendered title"

    def test_h1_fallback(self):
        page = parse_detail_html("<html><body><h1>Only heading</h1></body></html>", "https://portal.test/x")
        assert page.title == "Only heading"

    def test_dl_and_table_pairs(self, page):
        assert page.kv["Programme"] == "Horizon Europe (HORIZON)"
        assert page.kv["Type of action:"] == "HORIZON-RIA"
        assert page.kv["Deadline date"] == "15 March 2026"
        assert page.kv["Planned opening date"] == "10/11/2025"
        assert "Empty" not in page.kv

    def test_invalid_json_ld_skipped(self, page):
        assert page.json_ld == [{"@type": "Thing", "name": "small"}]

    def test_heading_blocks(self, page):
        assert page.text_bits["outcome"].startswith("Projects are expected")
        assert page.text_bits["scope"].startswith("Proposals should address")
        assert page.text_bits["summary"] == ""

    def test_anchors_resolved_and_filtered(self, page):
        assert page.anchors == [
            {"href": "https://portal.test/docs/annex-1.pdf", "text": "Annex 1 - Work programme"},
        ]

    def test_label_lookup(self, page):
        assert page.label("type of action") == "HORIZON-RIA"
        assert page.label("Missing", "Programme") == "Horizon Europe (HORIZON)"

    def test_empty_html(self):
        page = parse_detail_html("", "https://portal.test/x")
        assert page.kv == {}
        assert page.json_ld == []
        assert page.largest_json_ld() == {}


class TestJsonLdGraph:
    """JSON-LD @graph handling."""

    def test_graph_nodes_flattened_and_largest_picked(self):
        page = parse_detail_html(TENDER_HTML, "https://portal.test/tender-details/1")
        main = page.largest_json_ld()
        assert main["name"] == "Framework contract for IT services"
        assert len(page.json_ld) == 1


class TestFirstLabelValue:
    """Tests for first_label_value priority rules."""

    KV = {
        "Deadline for receipt of tenders": "2025-04-01",
        "Deadline": "2025-03-01",
        "Contract value": "",
        "Estimated value (excl. VAT)": "100000",
    }

    def test_exact_beats_contains(self):
        assert first_label_value(self.KV, ["deadline"]) == "2025-03-01"

    def test_contains_match(self):
        assert first_label_value(self.KV, ["estimated value"]) == "100000"

    def test_label_order_is_priority(self):
        assert first_label_value(self.KV, ["deadline for receipt of tenders", "deadline"]) == "2025-04-01"

    def test_empty_values_skipped(self):
        assert first_label_value(self.KV, ["contract value", "estimated value"]) == "100000"

    def test_no_match(self):
        assert first_label_value(self.KV, ["budget"]) == ""

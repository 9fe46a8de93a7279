"""Tests for configuration loading and the command line entry point."""

from pathlib import Path

import pytest

from ftportal import cli
from ftportal.config import (
    DEFAULT_FUNDING_KEYWORDS,
    DEFAULT_VALUE_BANDS,
    QUICK_MAX_ENRICH,
    QUICK_MAX_PAGES,
    load_config,
    parse_value_bands,
)
from ftportal.errors import StateCorruptionError
from ftportal.pipeline import RunReport, SourceReport


class TestParseValueBands:
    """Tests for parse_value_bands."""

    def test_sorted_highest_first(self):
        assert parse_value_bands("250000:1, 1000000:2") == ((1000000, 2), (250000, 1))

    def test_blank_chunks_ignored(self):
        assert parse_value_bands("5000000:3,,") == ((5000000, 3),)

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_value_bands("lots:2")


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self):
        config = load_config(env={})
        assert [s.name for s in config.sources] == ["funding", "tenders"]
        assert config.output_dir == Path("output")
        assert config.state_file == Path("state/seen.json")
        assert config.incremental is False
        assert config.browser.headless is True
        assert config.scoring.keywords == DEFAULT_FUNDING_KEYWORDS
        assert config.scoring.value_bands == DEFAULT_VALUE_BANDS

        funding = config.source("funding")
        assert funding.detail_endpoint
        assert funding.concurrency == 6
        assert config.source("tenders").detail_endpoint is None

    def test_quick_mode(self):
        config = load_config(env={"QUICK_MODE": "1"})
        for source in config.sources:
            assert source.max_pages == QUICK_MAX_PAGES
            assert source.enrich_cap == QUICK_MAX_ENRICH

    def test_environment_values(self):
        config = load_config(env={
            "INCREMENTAL": "true",
            "HEADLESS": "0",
            "OUTPUT_DIR": "/tmp/out",
            "MAX_ENRICH_TENDERS": "7",
            "TENDERS_CONCURRENCY": "2",
            "FUNDING_KEYWORDS": "ai, quantum ,",
            "TENDER_VALUE_BANDS": "100:1,1000:2",
            "LANG_CODE": "fr",
        })
        assert config.incremental is True
        assert config.browser.headless is False
        assert config.output_dir == Path("/tmp/out")
        tenders = config.source("tenders")
        assert (tenders.enrich_cap, tenders.concurrency, tenders.lang) == (7, 2, "fr")
        assert config.scoring.keywords == ("ai", "quantum")
        assert config.scoring.value_bands == ((1000, 2), (100, 1))

    def test_overrides_win(self):
        config = load_config(
            env={"INCREMENTAL": "0", "OUTPUT_DIR": "env-out"},
            overrides={"incremental": True, "output_dir": "cli-out", "sources": ["tenders"], "quick": None},
        )
        assert config.incremental is True
        assert config.output_dir == Path("cli-out")
        assert [s.name for s in config.sources] == ["tenders"]

    def test_unknown_source_lookup(self):
        with pytest.raises(KeyError):
            load_config(env={}).source("grants")


class FakePipeline:
    """Replaces Pipeline in the CLI; records the config it was given."""

    configs = []
    outcome = None

    def __init__(self, config):
        FakePipeline.configs.append(config)

    def execute(self):
        if isinstance(FakePipeline.outcome, Exception):
            raise FakePipeline.outcome
        return FakePipeline.outcome


@pytest.fixture
def fake_cli(monkeypatch, tmp_path):
    FakePipeline.configs = []
    FakePipeline.outcome = RunReport(run_ts="T", sources=[SourceReport(name="funding", listed=1)])
    monkeypatch.setattr(cli, "Pipeline", FakePipeline)
    monkeypatch.setattr(cli, "setup_logging", lambda verbose: tmp_path / "run.log")
    monkeypatch.setattr(cli, "load_dotenv", lambda: False)
    for key in ("QUICK_MODE", "INCREMENTAL", "HEADLESS", "OUTPUT_DIR", "STATE_FILE"):
        monkeypatch.delenv(key, raising=False)
    return FakePipeline


class TestCli:
    """Tests for the argument parser and main()."""

    def test_parser_defaults(self):
        args = cli.build_parser().parse_args([])
        assert args.quick is None
        assert args.incremental is None
        assert args.sources is None
        assert args.headed is False

    def test_parser_rejects_unknown_source(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--sources", "grants"])

    def test_flags_reach_config(self, fake_cli, tmp_path):
        code = cli.main(["-q", "-i", "-s", "funding", "-o", str(tmp_path / "o"),
                         "--state-file", str(tmp_path / "s.json"), "--headed"])
        assert code == 0
        config = fake_cli.configs[0]
        assert config.incremental is True
        assert config.browser.headless is False
        assert config.output_dir == tmp_path / "o"
        assert config.state_file == tmp_path / "s.json"
        assert [s.name for s in config.sources] == ["funding"]
        assert config.sources[0].max_pages == QUICK_MAX_PAGES

    def test_failed_source_exit_code(self, fake_cli):
        fake_cli.outcome = RunReport(run_ts="T", sources=[SourceReport(name="funding", error="down")])
        assert cli.main([]) == 1

    def test_state_corruption_exit_code(self, fake_cli):
        fake_cli.outcome = StateCorruptionError("bad state")
        assert cli.main([]) == 2

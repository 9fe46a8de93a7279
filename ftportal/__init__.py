"""
Discovery and enrichment pipeline for the EU Funding & Tenders portal.
"""

__version__ = "0.3.0"

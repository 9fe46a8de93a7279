#!/usr/bin/env python3
"""
EU Funding & Tenders portal scraper.

Usage:
    python run_pipeline.py                    # Full run
    python run_pipeline.py --quick            # Quick smoke run
    python run_pipeline.py --incremental      # Enrich only new items

See ftportal/cli.py for all options.
"""

import sys

from ftportal.cli import main


if __name__ == '__main__':
    sys.exit(main())

"""
EU Funding & Tenders portal scraper - command line entry point.

Usage:
    python run_pipeline.py                          # Full run, both sources
    python run_pipeline.py --quick                  # 2 pages, 30 enrichments per source
    python run_pipeline.py --incremental            # Enrich only new / missing items
    python run_pipeline.py --sources funding        # One source only
    python run_pipeline.py --headed --verbose       # Visible browser, debug logs

Environment variables (optionally from .env) provide the defaults; flags win.
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from ftportal.config import load_config
from ftportal.errors import StateCorruptionError
from ftportal.pipeline import Pipeline

logger = logging.getLogger(__name__)

LOG_DIR = Path("logs")


def setup_logging(verbose: bool = False, log_dir: Path = LOG_DIR) -> Path:
    """Log to a timestamped file under log_dir and to the console."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"pipeline_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ],
        force=True,
    )
    return log_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='EU Funding & Tenders portal scraper')
    parser.add_argument(
        '--quick', '-q',
        action='store_true',
        default=None,
        help='Quick mode: 2 listing pages and 30 enrichments per source'
    )
    parser.add_argument(
        '--incremental', '-i',
        action='store_true',
        default=None,
        help='Only enrich items not seen before (or missing from the last export)'
    )
    parser.add_argument(
        '--sources', '-s',
        nargs='+',
        choices=['funding', 'tenders'],
        default=None,
        help='Sources to run (default: all)'
    )
    parser.add_argument(
        '--output-dir', '-o',
        type=str,
        default=None,
        help='Directory for list/enriched outputs'
    )
    parser.add_argument(
        '--state-file',
        type=str,
        default=None,
        help='Path of the seen-items state file'
    )
    parser.add_argument(
        '--headed',
        action='store_true',
        help='Show the browser window'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Debug logging'
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    log_file = setup_logging(args.verbose)

    config = load_config(overrides={
        "quick": args.quick,
        "incremental": args.incremental,
        "sources": args.sources,
        "output_dir": args.output_dir,
        "state_file": args.state_file,
        "headless": False if args.headed else None,
    })
    logger.info(f"Logging to {log_file}")
    logger.info(f"Sources: {', '.join(s.name for s in config.sources)} -> {config.output_dir}")

    try:
        report = Pipeline(config).execute()
    except StateCorruptionError as e:
        logger.error(f"Cannot read state file: {e}")
        return 2

    logger.info("=" * 60)
    logger.info("PIPELINE COMPLETE")
    for rep in report.sources:
        if rep.error:
            logger.info(f"  {rep.name}: FAILED ({rep.error})")
        else:
            logger.info(
                f"  {rep.name}: listed {rep.listed}, new {rep.new}, enriched {rep.enriched} "
                f"({rep.degraded} degraded), rows {rep.rows}"
            )
    logger.info("=" * 60)

    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Run one scheduled news fetch for all tracked users (cron entry point).

Usage:
  python scripts/run_scheduled_fetch.py            # uses NEWS_STORE / GROK_API_KEY from env
  python scripts/run_scheduled_fetch.py --mock     # mock generator, no API calls
"""
import sys
import json
import argparse
import logging
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

load_dotenv(project_root / ".env")

from backend.ingestion.pipeline import NewsIngestionPipeline
from backend.ingestion.scheduled_fetch import ScheduledNewsFetcher
from backend.services.document_store import create_document_store
from backend.services.errors import ConfigurationError
from backend.services.llm_service import NewsGenerator


def main() -> int:
    parser = argparse.ArgumentParser(description="Scheduled news fetch")
    parser.add_argument("--mock", action="store_true", help="Use the mock news generator")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        generator = NewsGenerator(use_mock=args.mock)
    except ConfigurationError as e:
        print(f"✗ {e}")
        return 2

    store = create_document_store()
    fetcher = ScheduledNewsFetcher(store, NewsIngestionPipeline(generator, store))

    print("=" * 60)
    print("Scheduled news fetch")
    print("=" * 60)
    summary = fetcher.run()
    print(json.dumps(summary, indent=2, ensure_ascii=False))
    return 0 if summary.get("success") else 1


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Fetch news once for the given channels and print the stored items.

Example:
  python scripts/ingest_news.py "CNBC News" Twitter --tickers AAPL TSLA --owner user_1
"""
import sys
import argparse
import logging
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

load_dotenv(project_root / ".env")

from backend.ingestion.pipeline import NewsIngestionPipeline
from backend.services.document_store import create_document_store
from backend.services.errors import ConfigurationError, GeneratorError
from backend.services.llm_service import NewsGenerator


def main() -> int:
    parser = argparse.ArgumentParser(description="One-off news ingestion")
    parser.add_argument("sources", nargs="+", help="Channel names, e.g. 'CNBC News' Twitter")
    parser.add_argument("--tickers", nargs="*", default=None, help="Stock symbols to focus on")
    parser.add_argument("--owner", default=None, help="Owner id (omit for global news)")
    parser.add_argument("--mock", action="store_true", help="Use the mock news generator")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        generator = NewsGenerator(use_mock=args.mock)
        pipeline = NewsIngestionPipeline(generator, create_document_store())
        result = pipeline.ingest_with_report(args.sources, owner_id=args.owner, ticker_filter=args.tickers)
    except (ConfigurationError, GeneratorError) as e:
        print(f"✗ {e}")
        return 1

    for item in result.items:
        print(f"[{item.source}] {item.code:8} {item.change:+.2f}%  {item.headline}")
    print(f"✓ {result.count} items, stored: {'yes' if result.persisted else 'no'}")
    if result.persistence_error:
        print(f"⚠ {result.persistence_error}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
News ingestion pipeline: generator -> normalize -> dedupe -> upsert.
"""
import logging
import random
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence

from backend.ingestion.normalizer import deduplicate, map_sources, normalize_candidate
from backend.models.entities import IngestionResult, NewsItem
from backend.services.document_store import DocumentStore
from backend.services.errors import PersistenceError
from backend.services.llm_service import NewsGenerator
from backend.services.news_service import NEWS_COLLECTION

logger = logging.getLogger(__name__)


class NewsIngestionPipeline:
    """
    Stateless between calls. Collaborators are injected:
    - generator: NewsGenerator (or anything with fetch_news(sources, tickers))
    - store: DocumentStore receiving the upserts
    - rng: source of the placeholder change values
    - clock: returns the current UTC datetime
    """

    def __init__(
        self,
        generator: NewsGenerator,
        store: DocumentStore,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.generator = generator
        self.store = store
        self.rng = rng or random.Random()
        self.clock = clock or datetime.utcnow

    def ingest(
        self,
        requested_sources: Sequence[str],
        owner_id: Optional[str] = None,
        ticker_filter: Optional[Iterable[str]] = None,
    ) -> List[NewsItem]:
        """Run one ingestion and return the deduplicated items."""
        return self.ingest_with_report(requested_sources, owner_id, ticker_filter).items

    def ingest_with_report(
        self,
        requested_sources: Sequence[str],
        owner_id: Optional[str] = None,
        ticker_filter: Optional[Iterable[str]] = None,
    ) -> IngestionResult:
        """
        Same as ingest(), also reporting whether the store accepted the batch.

        GeneratorError propagates and nothing is written. A failed store write
        is logged and reported in the result; the items are returned anyway.
        """
        now = self.clock()
        sources = map_sources(requested_sources)
        if not sources:
            return IngestionResult(items=[], sources=[], timestamp=now.isoformat(), persisted=True)

        tickers = _ticker_list(ticker_filter)
        response = self.generator.fetch_news(sources, tickers or None)

        normalized = [
            normalize_candidate(raw, owner_id=owner_id, rng=self.rng, now=now)
            for raw in response.items
        ]
        items = deduplicate(normalized)
        logger.info(
            f"Ingested {len(items)} news items ({len(normalized) - len(items)} duplicates dropped) "
            f"from {', '.join(sources)}"
        )

        result = IngestionResult(items=items, sources=sources, timestamp=now.isoformat(), persisted=True)
        if items:
            try:
                self._persist(items)
            except Exception as e:
                error = e if isinstance(e, PersistenceError) else PersistenceError(str(e))
                logger.error(f"Failed to store {len(items)} news items: {error}")
                result.persisted = False
                result.persistence_error = str(error)
        return result

    def _persist(self, items: List[NewsItem]) -> None:
        docs = {item.id: item.model_dump() for item in items}
        self.store.upsert_many(NEWS_COLLECTION, docs)


def _ticker_list(tickers: Optional[Iterable[str]]) -> List[str]:
    if not tickers:
        return []
    if isinstance(tickers, str):
        tickers = [tickers]
    elif isinstance(tickers, (set, frozenset)):
        tickers = sorted(tickers)
    cleaned = (t.strip().upper() for t in tickers if t and t.strip())
    return list(dict.fromkeys(cleaned))

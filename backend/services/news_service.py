"""
Read side of the tracker: stored news lists, news details and citations.
"""
import logging
from datetime import datetime
from typing import List, Optional, Sequence

from backend.ingestion.normalizer import map_sources
from backend.models.entities import (
    ChangeTone, Citation, ImpactLevel, InvestorMood, MarketImpact, NewsDetail, NewsItem
)
from backend.services.document_store import DocumentStore

logger = logging.getLogger(__name__)

NEWS_COLLECTION = "news_items"
DETAILS_COLLECTION = "news_details"
MAX_RESULTS = 100

DOMINANT_PHRASES = [
    "Strong growth",
    "Market expansion",
    "Revenue increase",
    "Profit surge",
    "Strategic partnership",
    "Market volatility",
    "Declining performance",
    "Competitive pressure",
]


def calculate_market_impact(change: float) -> MarketImpact:
    abs_change = abs(change)
    if change > 5:
        return MarketImpact(level=ImpactLevel.VERY_POSITIVE, percentage=min(abs_change * 15, 100))
    if change > 2:
        return MarketImpact(level=ImpactLevel.POSITIVE, percentage=min(abs_change * 12, 85))
    if change < -5:
        return MarketImpact(level=ImpactLevel.VERY_NEGATIVE, percentage=min(abs_change * 15, 100))
    if change < -2:
        return MarketImpact(level=ImpactLevel.NEGATIVE, percentage=min(abs_change * 12, 85))
    return MarketImpact(level=ImpactLevel.NEUTRAL, percentage=min(abs_change * 10, 50))


def calculate_investor_mood(change_tone: str, change: float) -> InvestorMood:
    abs_change = abs(change)
    if change_tone == ChangeTone.POSITIVE.value:
        return InvestorMood(
            bullish=min(40 + abs_change * 5, 70),
            neutral=max(30 - abs_change * 2, 20),
            bearish=max(30 - abs_change * 3, 10),
        )
    return InvestorMood(
        bullish=max(20 - abs_change * 2, 10),
        neutral=max(30 - abs_change, 20),
        bearish=min(50 + abs_change * 3, 70),
    )


def extract_dominant_phrase(headline: str) -> str:
    text = headline.lower()
    if "growth" in text or "increase" in text:
        return DOMINANT_PHRASES[0]
    if "decline" in text or "drop" in text:
        return DOMINANT_PHRASES[6]
    return DOMINANT_PHRASES[4]


def create_news_detail(item: NewsItem, citations: Sequence[Citation] = ()) -> NewsDetail:
    """Derive the detail view of a news item from its change and citations."""
    summary = item.headline
    if citations and citations[0].summary:
        summary = citations[0].summary
    return NewsDetail(
        id=item.id,
        code=item.code,
        name=item.name,
        summary=summary,
        market_impact=calculate_market_impact(item.change),
        expert_review="Positive" if item.change_tone == ChangeTone.POSITIVE.value else "Negative",
        changes={
            "1D": item.change,
            "1W": item.change * 2,
            "1M": item.change * 4,
            "1Y": item.change * 10,
        },
        investor_mood=calculate_investor_mood(item.change_tone, item.change),
        dominant_phrase=extract_dominant_phrase(item.headline),
        citations=list(citations),
        owner_id=item.owner_id,
        created_at=item.created_at,
        updated_at=datetime.utcnow().isoformat(),
    )


class NewsService:
    """Queries over the news collections of a DocumentStore"""

    def __init__(self, store: DocumentStore):
        self.store = store

    def fetch_news(
        self,
        channels: Sequence[str],
        date: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> List[NewsItem]:
        """
        News for one day, newest first.

        owner_id None selects global records only. Channels are channel labels
        (mapped to canonical sources); empty means all sources.
        """
        date = date or datetime.utcnow().date().isoformat()
        filters = [("date", "==", date), ("owner_id", "==", owner_id)]
        if channels:
            filters.append(("source", "in", map_sources(channels)))

        docs = self.store.query(
            NEWS_COLLECTION,
            filters=filters,
            order_by="updated_at",
            descending=True,
            limit=MAX_RESULTS,
        )
        return [NewsItem(**doc) for doc in docs]

    def get_news_item(self, news_id: str) -> Optional[NewsItem]:
        doc = self.store.get(NEWS_COLLECTION, news_id)
        return NewsItem(**doc) if doc else None

    def fetch_news_detail(self, news_id: str, owner_id: Optional[str] = None) -> Optional[NewsDetail]:
        """
        Stored detail if present, otherwise derived from the news item and cached.
        A detail owned by someone other than owner_id is not returned.
        """
        doc = self.store.get(DETAILS_COLLECTION, news_id)
        if doc:
            if owner_id and doc.get("owner_id") and doc["owner_id"] != owner_id:
                return None
            return NewsDetail(**doc)

        item = self.get_news_item(news_id)
        if not item:
            return None
        if owner_id and item.owner_id and item.owner_id != owner_id:
            return None

        detail = create_news_detail(item, self.get_citations(news_id))
        self._store_detail(detail)
        return detail

    def get_citations(self, news_id: str) -> List[Citation]:
        docs = self.store.query(self._citations_path(news_id))
        return [Citation(**doc) for doc in docs]

    def store_citations(self, news_id: str, citations: Sequence[Citation]) -> None:
        path = self._citations_path(news_id)
        self.store.upsert_many(path, {c.id: c.model_dump() for c in citations})

    def _store_detail(self, detail: NewsDetail) -> None:
        data = detail.model_dump()
        data["created_at"] = detail.created_at or datetime.utcnow().isoformat()
        try:
            self.store.set(DETAILS_COLLECTION, detail.id, data, merge=True)
        except Exception as e:
            logger.error(f"Error storing news detail {detail.id}: {e}")

    @staticmethod
    def _citations_path(news_id: str) -> str:
        return f"{NEWS_COLLECTION}/{news_id}/citations"

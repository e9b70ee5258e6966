"""
Normalization utilities for generator candidates -> NewsItem.
"""
import random
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from backend.models.entities import (
    ChangeTone, Confidence, NewsItem, RawCandidate, Sentiment
)

# Channel label shown to users -> source name understood by the generator
# and stored on news items
CHANNEL_MAPPING: Dict[str, str] = {
    "CNBC News": "CNBC",
    "Twitter": "Twitter/X",
    "Reddit Community": "Reddit",
    "Live Mint": "Live Mint",
    "Money Control": "Money Control",
    "Times Prime": "Times Prime",
    "Google Finance": "Google Finance",
}

UNKNOWN_CODE = "UNKNOWN"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def map_source(name: str) -> str:
    """Canonical source for a channel label; unknown labels pass through."""
    return CHANNEL_MAPPING.get(name, name)


def map_sources(names: Iterable[str]) -> List[str]:
    return [map_source(n) for n in names]


def simple_hash(text: str) -> str:
    """
    32-bit "h * 31 + c" string hash over UTF-16 code units, absolute value in base 36.
    Not collision-free; only stable.
    """
    h = 0
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = ((h << 5) - h + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    n = abs(h)
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_news_id(headline: str, source: str, date: Optional[str]) -> str:
    return f"news_{simple_hash(headline + source + (date or ''))}"


def parse_sentiment(value: Optional[str]) -> Sentiment:
    try:
        return Sentiment((value or "").strip().lower())
    except ValueError:
        return Sentiment.NEUTRAL


def parse_confidence(value: Optional[str]) -> Confidence:
    wanted = (value or "").strip().lower()
    for level in Confidence:
        if level.value.lower() == wanted:
            return level
    return Confidence.MEDIUM


def change_from_sentiment(sentiment: Optional[str], rng: Optional[random.Random] = None) -> float:
    """
    Placeholder percentage change, sign-correlated with sentiment:
    positive in (0.5, 5.5], negative in [-5.5, -0.5), otherwise [-1, 1).

    Stand-in until real price data is available.
    """
    rng = rng or random
    mood = parse_sentiment(sentiment)
    if mood is Sentiment.POSITIVE:
        return 5.5 - rng.random() * 5
    if mood is Sentiment.NEGATIVE:
        return -(5.5 - rng.random() * 5)
    return rng.random() * 2 - 1


def normalize_candidate(
    raw: RawCandidate,
    owner_id: Optional[str] = None,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> NewsItem:
    """Convert one generator candidate to a NewsItem. Independent of other candidates."""
    now = now or datetime.utcnow()
    headline = raw.headline or "No headline"
    source = map_source(raw.source or "Unknown")
    date = raw.date or now.date().isoformat()
    code = (raw.stock_symbol or "").strip().upper() or UNKNOWN_CODE
    sentiment = parse_sentiment(raw.sentiment)
    stamp = now.isoformat()

    return NewsItem(
        id=generate_news_id(headline, source, date),
        code=code,
        name=raw.stock_name or code,
        headline=headline,
        summary=raw.summary,
        source=source,
        url=raw.url,
        change=change_from_sentiment(sentiment.value, rng),
        change_tone=ChangeTone.POSITIVE if sentiment is Sentiment.POSITIVE else ChangeTone.NEGATIVE,
        confidence=parse_confidence(raw.confidence),
        date=date,
        owner_id=owner_id,
        created_at=stamp,
        updated_at=stamp,
    )


def dedup_key(item: NewsItem) -> str:
    return f"{item.headline.lower()}_{item.source}_{item.date}"


def deduplicate(items: Sequence[NewsItem]) -> List[NewsItem]:
    """Keep the first item per (lowercased headline, source, date), in arrival order."""
    seen = set()
    unique = []
    for item in items:
        key = dedup_key(item)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique

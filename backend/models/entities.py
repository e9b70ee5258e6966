"""
Data models for the market news tracker
"""
from datetime import datetime
from typing import List, Dict, Optional
from enum import Enum
from pydantic import BaseModel, Field


class Sentiment(str, Enum):
    """Sentiment reported by the generator for a news candidate"""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class Confidence(str, Enum):
    """Confidence level attached to a news item"""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class ChangeTone(str, Enum):
    """Display tone of the change column (no neutral tone)"""
    POSITIVE = "positive"
    NEGATIVE = "negative"


class ImpactLevel(str, Enum):
    """Market impact buckets"""
    VERY_POSITIVE = "Very Positive"
    POSITIVE = "Positive"
    NEUTRAL = "Neutral"
    NEGATIVE = "Negative"
    VERY_NEGATIVE = "Very Negative"


class JobStatus(str, Enum):
    """Status of a scheduled fetch job"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# --- Generator payload ---

class RawCandidate(BaseModel):
    """News candidate as returned by the generator (untrusted, partial)"""
    headline: Optional[str] = None
    summary: Optional[str] = None
    source: Optional[str] = None
    stock_symbol: Optional[str] = Field(default=None, alias="stockSymbol")
    stock_name: Optional[str] = Field(default=None, alias="stockName")
    sentiment: Optional[str] = None
    confidence: Optional[str] = None
    date: Optional[str] = Field(default=None, description="YYYY-MM-DD")
    url: Optional[str] = None

    class Config:
        populate_by_name = True
        extra = "ignore"


class GeneratorResponse(BaseModel):
    """Structured payload extracted from the generator reply"""
    items: List[RawCandidate] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    timestamp: str = Field(default_factory=lambda: datetime.utcnow().isoformat())


# --- Persisted records ---

class NewsItem(BaseModel):
    """Normalized news row, upserted into the `news_items` collection"""
    id: str = Field(..., description="news_<hash of headline+source+date>")
    code: str = Field(..., description="Upper-cased ticker or UNKNOWN")
    name: str = Field(..., description="Company/display name")
    headline: str
    summary: Optional[str] = None
    source: str = Field(..., description="Canonical source name")
    url: Optional[str] = None

    # Market metrics. `change` is a sentiment-driven placeholder until a
    # price feed is wired in; cmp/pe/sector are unfilled.
    cmp: float = 0.0
    pe: float = 0.0
    change: float = 0.0
    change_tone: ChangeTone = ChangeTone.NEGATIVE
    sector: str = "General"

    confidence: Confidence = Confidence.MEDIUM
    date: str = Field(..., description="YYYY-MM-DD")
    owner_id: Optional[str] = Field(default=None, description="None = global record")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    class Config:
        use_enum_values = True


class Citation(BaseModel):
    """Source article backing a news item"""
    id: str
    title: str = ""
    url: Optional[str] = None
    source: Optional[str] = None
    summary: Optional[str] = None


class MarketImpact(BaseModel):
    level: ImpactLevel
    percentage: float

    class Config:
        use_enum_values = True


class InvestorMood(BaseModel):
    bullish: float
    neutral: float
    bearish: float


class NewsDetail(BaseModel):
    """Expanded view of a news item, cached in `news_details`"""
    id: str
    code: str
    name: str
    summary: str
    market_impact: MarketImpact
    expert_review: str
    changes: Dict[str, float] = Field(default_factory=dict, description="1D/1W/1M/1Y")
    investor_mood: InvestorMood
    dominant_phrase: str
    citations: List[Citation] = Field(default_factory=list)
    owner_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# --- Tracker configuration and jobs ---

class ChannelConfig(BaseModel):
    name: str
    enabled: bool = True


class TrackerConfig(BaseModel):
    """Per-owner tracker settings stored in `news_sources/<owner>`"""
    channels: List[ChannelConfig] = Field(default_factory=list)
    update_frequency: str = Field(default="Every 30 min", alias="updateFrequency")

    class Config:
        populate_by_name = True
        extra = "ignore"

    def enabled_channels(self) -> List[str]:
        return [c.name for c in self.channels if c.enabled]


class FetchJob(BaseModel):
    """Record of a scheduled fetch, one per owner per day"""
    job_id: str
    owner_id: Optional[str] = None
    source: str = "scheduled"
    status: JobStatus = JobStatus.PENDING
    last_run: str
    error_log: Optional[str] = None
    items_count: Optional[int] = None

    class Config:
        use_enum_values = True


class IngestionResult(BaseModel):
    """Outcome of one ingestion call"""
    items: List[NewsItem] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    timestamp: str = Field(default_factory=lambda: datetime.utcnow().isoformat())
    persisted: bool = False
    persistence_error: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.items)

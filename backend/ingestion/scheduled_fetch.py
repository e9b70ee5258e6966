"""
Periodic news fetch for every tracked owner (cron / manual trigger).
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from backend.ingestion.pipeline import NewsIngestionPipeline
from backend.models.entities import ChannelConfig, FetchJob, JobStatus, TrackerConfig
from backend.services.document_store import DocumentStore

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
CONFIG_COLLECTION = "news_sources"
WATCHLIST_COLLECTION = "watchlists"
JOBS_COLLECTION = "news_fetch_jobs"

DEFAULT_SOURCES = ["CNBC News", "Twitter", "Live Mint", "Money Control"]

_EVERY_MIN = re.compile(r"every\s+(\d+)\s*min", re.IGNORECASE)
_DAILY = re.compile(r"daily\s+(\d{1,2})\s*(am|pm)?", re.IGNORECASE)


def default_tracker_config() -> TrackerConfig:
    return TrackerConfig(
        channels=[
            ChannelConfig(name="CNBC News", enabled=True),
            ChannelConfig(name="Twitter", enabled=True),
            ChannelConfig(name="Reddit Community", enabled=False),
            ChannelConfig(name="Live Mint", enabled=False),
            ChannelConfig(name="Money Control", enabled=False),
            ChannelConfig(name="Times Prime", enabled=False),
            ChannelConfig(name="Google Finance", enabled=False),
        ],
        update_frequency="Every 30 min",
    )


class ScheduledNewsFetcher:
    """Runs the ingestion pipeline once per due owner and records a job per owner per day"""

    def __init__(
        self,
        store: DocumentStore,
        pipeline: NewsIngestionPipeline,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.pipeline = pipeline
        self.clock = clock or datetime.utcnow

    def run(self) -> Dict[str, Any]:
        start = self.clock().isoformat()
        try:
            owner_ids = self.store.list_ids(USERS_COLLECTION)
            if not owner_ids:
                logger.info("No users found, fetching global news")
                items = self.pipeline.ingest(DEFAULT_SOURCES)
                return {
                    "success": True,
                    "message": "Fetched global news",
                    "timestamp": start,
                    "items_fetched": len(items),
                }

            results = [r for r in (self.fetch_for_owner(oid) for oid in owner_ids) if r]
            return {
                "success": True,
                "message": "Scheduled news fetch completed",
                "timestamp": start,
                "results": results,
            }
        except Exception as e:
            logger.exception("Error in scheduled news fetch")
            return {"success": False, "error": str(e), "timestamp": start}

    def fetch_for_owner(self, owner_id: str) -> Optional[Dict[str, Any]]:
        """Ingest for one owner. Returns None when the owner is skipped."""
        config = self.get_tracker_config(owner_id)
        channels = config.enabled_channels()
        if not channels:
            logger.info(f"Skipping user {owner_id} - no enabled channels")
            return None
        try:
            if not self.should_fetch_now(config.update_frequency, owner_id):
                logger.info(f"Skipping user {owner_id} - not time to fetch yet")
                return None
            symbols = self.get_watchlist_symbols(owner_id)
            items = self.pipeline.ingest(channels, owner_id=owner_id, ticker_filter=symbols)
        except Exception as e:
            logger.error(f"Error fetching news for user {owner_id}: {e}")
            self.update_job_status(owner_id, JobStatus.FAILED, error_log=str(e))
            return {"owner_id": owner_id, "status": "error", "error": str(e)}

        self.update_job_status(owner_id, JobStatus.COMPLETED, items_count=len(items))
        return {"owner_id": owner_id, "items_fetched": len(items), "status": "success"}

    def get_tracker_config(self, owner_id: str) -> TrackerConfig:
        try:
            doc = self.store.get(CONFIG_COLLECTION, owner_id)
        except Exception as e:
            logger.error(f"Error getting config for user {owner_id}: {e}")
            return default_tracker_config()
        if not doc:
            return default_tracker_config()
        try:
            return TrackerConfig(**doc)
        except ValidationError as e:
            logger.warning(f"Invalid news source config for user {owner_id}, using defaults: {e}")
            return default_tracker_config()

    def get_watchlist_symbols(self, owner_id: str) -> Optional[List[str]]:
        doc = self.store.get(WATCHLIST_COLLECTION, owner_id)
        if not doc:
            return None
        return [item["symbol"] for item in doc.get("items") or [] if item.get("symbol")]

    def should_fetch_now(self, frequency: str, owner_id: str) -> bool:
        """
        "Every N min" / "Hourly": due when the last run is at least that old.
        "Daily H am|pm": due once per day from hour H on.
        Anything else is always due.
        """
        last_run = self._last_run(owner_id)
        if last_run is None:
            return True
        now = self.clock()

        interval = _interval(frequency)
        if interval is not None:
            return now - last_run >= interval

        daily = _DAILY.search(frequency or "")
        if daily:
            hour = int(daily.group(1)) % 12 if daily.group(2) else int(daily.group(1))
            if (daily.group(2) or "").lower() == "pm":
                hour += 12
            if hour > 23:
                return True
            scheduled = now.replace(hour=hour, minute=0, second=0, microsecond=0)
            return now >= scheduled and last_run < scheduled
        return True

    def update_job_status(
        self,
        owner_id: str,
        status: JobStatus,
        error_log: Optional[str] = None,
        items_count: Optional[int] = None,
    ) -> None:
        now = self.clock()
        job = FetchJob(
            job_id=f"job_{owner_id}_{now.date().isoformat()}",
            owner_id=owner_id,
            status=status,
            last_run=now.isoformat(),
            error_log=error_log,
            items_count=items_count,
        )
        data = job.model_dump(exclude_none=True)
        data["updated_at"] = now.isoformat()
        try:
            self.store.set(JOBS_COLLECTION, job.job_id, data, merge=True)
        except Exception as e:
            logger.error(f"Error updating job status for {owner_id}: {e}")

    def _last_run(self, owner_id: str) -> Optional[datetime]:
        jobs = self.store.query(
            JOBS_COLLECTION,
            filters=[("owner_id", "==", owner_id)],
            order_by="last_run",
            descending=True,
            limit=1,
        )
        if not jobs or not jobs[0].get("last_run"):
            return None
        return datetime.fromisoformat(jobs[0]["last_run"])


def _interval(frequency: str) -> Optional[timedelta]:
    text = (frequency or "").strip().lower()
    if text == "hourly":
        return timedelta(hours=1)
    match = _EVERY_MIN.search(text)
    if match:
        return timedelta(minutes=int(match.group(1)))
    return None

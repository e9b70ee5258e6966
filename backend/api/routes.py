"""
FastAPI routes for the market news tracker API
"""
import logging
import os
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, Header, HTTPException, Query
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from backend.ingestion.pipeline import NewsIngestionPipeline
from backend.services.document_store import DocumentStore, create_document_store
from backend.services.errors import ConfigurationError, GeneratorError
from backend.services.llm_service import NewsGenerator
from backend.services.news_service import NewsService

logger = logging.getLogger(__name__)


# Services are built on first use so that importing the app needs no credentials
_store: Optional[DocumentStore] = None
_generator: Optional[NewsGenerator] = None
_pipeline: Optional[NewsIngestionPipeline] = None
_news_service: Optional[NewsService] = None


def set_services(store: Optional[DocumentStore] = None, generator: Optional[NewsGenerator] = None):
    """Replace the store/generator (tests, scripts). Dependent services are rebuilt."""
    global _store, _generator, _pipeline, _news_service
    _store = store
    _generator = generator
    _pipeline = None
    _news_service = None


def get_store() -> DocumentStore:
    global _store
    if _store is None:
        _store = create_document_store()
    return _store


def get_pipeline() -> NewsIngestionPipeline:
    global _generator, _pipeline
    if _pipeline is None:
        if _generator is None:
            _generator = NewsGenerator(use_mock=os.getenv("NEWS_LLM_MOCK", "").lower() in ("1", "true", "yes"))
        _pipeline = NewsIngestionPipeline(_generator, get_store())
    return _pipeline


def get_news_service() -> NewsService:
    global _news_service
    if _news_service is None:
        _news_service = NewsService(get_store())
    return _news_service


app = FastAPI(
    title="Market News Tracker API",
    description="Aggregated market news backed by an LLM news generator",
    version="0.1.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def http_error_envelope(request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error_envelope(request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request body"})


class FetchNewsRequest(BaseModel):
    sources: List[str] = Field(default_factory=list)
    owner_id: Optional[str] = Field(default=None, alias="ownerId")
    ticker_filter: Optional[List[str]] = Field(default=None, alias="tickerFilter")

    class Config:
        populate_by_name = True


# --- Health Check ---

@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "name": "Market News Tracker API",
        "version": "0.1.0",
        "status": "running"
    }


@app.get("/api/health")
def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "store": type(get_store()).__name__,
    }


# --- News ---

@app.post("/api/news/fetch")
def fetch_news(request: FetchNewsRequest):
    """Fetch fresh news from the generator, store it and return it"""
    if not request.sources:
        raise HTTPException(status_code=400, detail="Sources array is required")

    try:
        result = get_pipeline().ingest_with_report(
            request.sources,
            owner_id=request.owner_id,
            ticker_filter=request.ticker_filter,
        )
    except (GeneratorError, ConfigurationError) as e:
        logger.error(f"Error fetching news: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    except Exception as e:
        logger.exception(f"Unexpected error fetching news: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch news")

    data = {
        "items": [item.model_dump() for item in result.items],
        "count": result.count,
        "timestamp": datetime.utcnow().isoformat(),
        "persisted": result.persisted,
    }
    if result.persistence_error:
        data["warning"] = f"News could not be stored: {result.persistence_error}"
    return {"success": True, "data": data}


@app.get("/api/news")
def get_news(
    date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    channels: Optional[str] = Query(None, description="Comma-separated channel names"),
    user_id: Optional[str] = Query(None, alias="userId"),
    x_user_id: Optional[str] = Header(None),
):
    """Get stored news for a day"""
    channel_list = [c.strip() for c in channels.split(",") if c.strip()] if channels else []
    owner_id = user_id or x_user_id or None
    try:
        news = get_news_service().fetch_news(channel_list, date=date, owner_id=owner_id)
    except Exception as e:
        logger.error(f"Error fetching news: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch news")
    return {"success": True, "data": [n.model_dump() for n in news]}


@app.get("/api/news/{news_id}")
def get_news_detail(
    news_id: str,
    user_id: Optional[str] = Query(None, alias="userId"),
    x_user_id: Optional[str] = Header(None),
):
    """Get detail view of a news item"""
    try:
        detail = get_news_service().fetch_news_detail(news_id, owner_id=user_id or x_user_id or None)
    except Exception as e:
        logger.error(f"Error fetching news detail: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch news detail")

    if not detail:
        raise HTTPException(status_code=404, detail="News item not found")
    return {"success": True, "data": detail.model_dump()}

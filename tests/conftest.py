import json
import random
from datetime import datetime

import pytest

from backend.services.document_store import InMemoryDocumentStore
from backend.services.errors import GeneratorError, PersistenceError
from backend.services.llm_service import NewsGenerator


def make_content(items, fenced=False) -> str:
    text = json.dumps({"items": items, "sources": ["CNBC"], "timestamp": "2024-05-01T09:00:00"})
    if fenced:
        return "```json\n" + text + "\n```"
    return text


class RecordingGenerator:
    """Generator double: returns fixed content through the real parser, records calls"""

    def __init__(self, content: str):
        self.content = content
        self.calls = []
        self._parser = NewsGenerator(provider="grok", use_mock=True)

    def fetch_news(self, sources, tickers=None):
        self.calls.append((list(sources), tickers))
        return self._parser.parse_response(self.content, sources)


class FailingGenerator:
    def __init__(self):
        self.calls = 0

    def fetch_news(self, sources, tickers=None):
        self.calls += 1
        raise GeneratorError("Grok API error: 503 - unavailable", status_code=503)


class FailingStore(InMemoryDocumentStore):
    def upsert_many(self, collection, docs):
        raise PersistenceError("store offline")


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def fixed_now():
    return datetime(2024, 5, 1, 12, 0, 0)


@pytest.fixture
def sample_items():
    return [
        {
            "headline": "X raises guidance",
            "source": "CNBC",
            "sentiment": "positive",
            "date": "2024-05-01",
            "stockSymbol": "xco",
            "stockName": "X Corp",
        }
    ]

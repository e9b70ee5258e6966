import random
from datetime import datetime

import pytest

from backend.ingestion.normalizer import generate_news_id
from backend.ingestion.pipeline import NewsIngestionPipeline
from backend.services.errors import GeneratorError
from tests.conftest import FailingGenerator, FailingStore, RecordingGenerator, make_content


def make_pipeline(generator, store, now=None):
    now = now or datetime(2024, 5, 1, 12, 0, 0)
    return NewsIngestionPipeline(generator, store, rng=random.Random(7), clock=lambda: now)


def test_generator_called_once_with_mapped_sources(store, sample_items):
    gen = RecordingGenerator(make_content(sample_items))
    make_pipeline(gen, store).ingest(["CNBC News", "Twitter", "Bloomberg"], ticker_filter=["xco", "XCO", " abc "])

    assert len(gen.calls) == 1
    sources, tickers = gen.calls[0]
    assert sources == ["CNBC", "Twitter/X", "Bloomberg"]
    assert tickers == ["XCO", "ABC"]


def test_no_ticker_filter_passes_none(store, sample_items):
    gen = RecordingGenerator(make_content(sample_items))
    make_pipeline(gen, store).ingest(["CNBC News"])
    assert gen.calls[0][1] is None


def test_single_ticker_string_is_one_symbol(store, sample_items):
    gen = RecordingGenerator(make_content(sample_items))
    make_pipeline(gen, store).ingest(["CNBC News"], ticker_filter="aapl")
    assert gen.calls[0][1] == ["AAPL"]


def test_empty_sources_short_circuit(store):
    gen = RecordingGenerator(make_content([]))
    result = make_pipeline(gen, store).ingest([])
    assert result == []
    assert gen.calls == []
    assert store.list_ids("news_items") == []


def test_end_to_end_single_item(store):
    content = make_content([{
        "headline": "X raises guidance",
        "source": "CNBC",
        "sentiment": "positive",
        "date": "2024-05-01",
    }])
    items = make_pipeline(RecordingGenerator(content), store).ingest(["CNBC News", "Twitter"])

    assert len(items) == 1
    item = items[0]
    assert item.source == "CNBC"
    assert item.change_tone == "positive"
    assert 0.5 < item.change <= 5.5
    assert item.date == "2024-05-01"
    assert item.id == generate_news_id("X raises guidance", "CNBC", "2024-05-01")


def test_duplicate_items_collapse(store, sample_items):
    content = make_content(sample_items + sample_items)
    items = make_pipeline(RecordingGenerator(content), store).ingest(["CNBC News", "Twitter"])
    assert len(items) == 1


def test_first_duplicate_wins(store):
    content = make_content([
        {"headline": "Chipmaker beats", "source": "CNBC", "date": "2024-05-01", "stockSymbol": "AAA"},
        {"headline": "CHIPMAKER BEATS", "source": "CNBC", "date": "2024-05-01", "stockSymbol": "BBB"},
    ])
    items = make_pipeline(RecordingGenerator(content), store).ingest(["CNBC News"])
    assert len(items) == 1
    assert items[0].code == "AAA"
    assert items[0].headline == "Chipmaker beats"


def test_same_triple_same_id_across_calls(store, sample_items):
    content = make_content(sample_items)
    first = make_pipeline(RecordingGenerator(content), store).ingest(["CNBC News"])
    second = make_pipeline(RecordingGenerator(content), store).ingest(["CNBC News"])
    assert first[0].id == second[0].id
    assert store.list_ids("news_items") == [first[0].id]


def test_items_are_persisted_with_owner(store, sample_items):
    items = make_pipeline(RecordingGenerator(make_content(sample_items)), store).ingest(
        ["CNBC News"], owner_id="user_1"
    )
    doc = store.get("news_items", items[0].id)
    assert doc["owner_id"] == "user_1"
    assert doc["code"] == "XCO"
    assert doc["created_at"] and doc["updated_at"]


def test_malformed_generator_output_is_empty_result(store):
    gen = RecordingGenerator("The markets were calm today.")
    result = make_pipeline(gen, store).ingest_with_report(["CNBC News"])
    assert result.items == []
    assert result.persisted is True
    assert len(gen.calls) == 1


def test_generator_error_propagates_and_nothing_written(store):
    gen = FailingGenerator()
    with pytest.raises(GeneratorError):
        make_pipeline(gen, store).ingest(["CNBC News"])
    assert gen.calls == 1
    assert store.list_ids("news_items") == []


def test_persistence_failure_still_returns_items(sample_items):
    gen = RecordingGenerator(make_content(sample_items))
    result = make_pipeline(gen, FailingStore()).ingest_with_report(["CNBC News"])

    assert result.count == 1
    assert result.persisted is False
    assert "store offline" in result.persistence_error


def test_ingest_returns_list_even_when_store_fails(sample_items):
    gen = RecordingGenerator(make_content(sample_items))
    items = make_pipeline(gen, FailingStore()).ingest(["CNBC News"])
    assert len(items) == 1

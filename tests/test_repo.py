from __future__ import annotations

import asyncio
import csv
import json
from datetime import datetime, timezone

from faire_scout.extractors.schemas import EnrichedRecord
from faire_scout.storage import repo


def _enriched(product_id: str = "p_1", **overrides) -> EnrichedRecord:
    data = {
        "product_id": product_id,
        "product_url": f"https://www.faire.com/product/{product_id}",
        "name": "Soy Candle",
        "brand_name": "Lumen Co",
        "brand_id": "b_lumen",
        "wholesale_price_minor": 1250,
        "retail_price_minor": 2500,
        "badges": frozenset({"bestseller", "new"}),
        "attributes": ("Materials: Soy", "Color: Ivory"),
        "scraped_at": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        "detail_fetch_succeeded": True,
        "source": "network",
    }
    data.update(overrides)
    return EnrichedRecord(**data)


class DummyLog:
    def __init__(self) -> None:
        self.messages: list[str] = []

    def info(self, message: str) -> None:
        self.messages.append(message)


class DummyActor:
    def __init__(self) -> None:
        self.log = DummyLog()
        self.pushed: list[list[dict]] = []

    async def push_data(self, items) -> None:
        self.pushed.append(list(items))


def test_to_dataset_item_flattens_record() -> None:
    item = repo.to_dataset_item(_enriched())

    assert list(item) == repo.DATASET_FIELDS
    assert item["productToken"] == "p_1"
    assert item["wholesalePrice"] == "$12.50"
    assert item["wholesalePriceCents"] == 1250
    assert item["msrp"] == "$25.00"
    assert item["isBestseller"] is True
    assert item["isNew"] is True
    assert item["isProvenSuccess"] is False
    assert item["attributes"] == ["Materials: Soy", "Color: Ivory"]
    assert item["_scrapedAt"] == "2024-05-01T12:00:00Z"
    assert item["_detailsFetched"] is True
    assert item["error"] is None


def test_to_dataset_item_leaves_unknown_prices_blank() -> None:
    item = repo.to_dataset_item(_enriched(wholesale_price_minor=0, retail_price_minor=0, image_url=None))
    assert item["wholesalePrice"] == ""
    assert item["wholesalePriceCents"] is None
    assert item["imageUrl"] == ""


def test_csv_sink_writes_header_once(tmp_path) -> None:
    path = tmp_path / "out" / "products.csv"
    sink = repo.CsvSink(path)

    asyncio.run(sink.push([_enriched("p_1")]))
    asyncio.run(sink.push([_enriched("p_2", error="Detail fetch failed: boom")]))

    with path.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.reader(handle))

    assert rows[0] == repo.DATASET_FIELDS
    assert [row[0] for row in rows[1:]] == ["p_1", "p_2"]
    attributes_column = repo.DATASET_FIELDS.index("attributes")
    assert rows[1][attributes_column] == "Materials: Soy; Color: Ivory"
    assert rows[1][repo.DATASET_FIELDS.index("error")] == ""
    assert sink.pushed == 2


def test_jsonl_sink_appends_objects(tmp_path) -> None:
    path = tmp_path / "products.jsonl"
    sink = repo.JsonlSink(path)

    asyncio.run(sink.push([_enriched("p_1"), _enriched("p_2")]))

    lines = path.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["productToken"] for line in lines] == ["p_1", "p_2"]


def test_apify_dataset_sink_pushes_items() -> None:
    actor = DummyActor()
    sink = repo.ApifyDatasetSink(actor)

    asyncio.run(sink.push([_enriched("p_1"), _enriched("p_2")]))

    assert [item["productToken"] for item in actor.pushed[0]] == ["p_1", "p_2"]
    assert actor.log.messages == ["Pushed 2 products to dataset (total 2)"]


def test_multi_sink_forwards_to_each(tmp_path) -> None:
    actor = DummyActor()
    jsonl = repo.JsonlSink(tmp_path / "products.jsonl")
    sink = repo.MultiSink(jsonl, repo.ApifyDatasetSink(actor))

    asyncio.run(sink.push([_enriched()]))

    assert jsonl.pushed == 1
    assert len(actor.pushed) == 1

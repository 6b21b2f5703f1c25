"""Record sinks: Apify dataset, CSV and JSON-lines files."""

from __future__ import annotations

import csv
import json
import os
from pathlib import Path
from typing import Any, Sequence

from faire_scout.extractors.schemas import EnrichedRecord, format_price
from faire_scout.logging_config import get_logger

LOGGER = get_logger(__name__)

DATASET_FIELDS = [
    "productToken",
    "productUrl",
    "productName",
    "brandName",
    "brandToken",
    "brandUrl",
    "imageUrl",
    "wholesalePrice",
    "wholesalePriceCents",
    "msrp",
    "msrpCents",
    "isBestseller",
    "isProvenSuccess",
    "isNew",
    "description",
    "sku",
    "madeIn",
    "delivery",
    "dimensions",
    "materials",
    "minimumOrder",
    "casePack",
    "color",
    "attributes",
    "source",
    "_scrapedAt",
    "_detailsFetched",
    "error",
]


def to_dataset_item(record: EnrichedRecord) -> dict[str, Any]:
    """Flatten ``record`` into the dataset item shape, keys in ``DATASET_FIELDS`` order."""

    item = {
        "productToken": record.product_id,
        "productUrl": record.product_url,
        "productName": record.name,
        "brandName": record.brand_name,
        "brandToken": record.brand_id,
        "brandUrl": record.brand_url,
        "imageUrl": record.image_url or "",
        "wholesalePrice": format_price(record.wholesale_price_minor),
        "wholesalePriceCents": record.wholesale_price_minor or None,
        "msrp": format_price(record.retail_price_minor),
        "msrpCents": record.retail_price_minor or None,
        "isBestseller": "bestseller" in record.badges,
        "isProvenSuccess": "proven" in record.badges,
        "isNew": "new" in record.badges,
        "description": record.description,
        "sku": record.sku,
        "madeIn": record.origin_country,
        "delivery": record.shipping_info,
        "dimensions": record.dimensions,
        "materials": record.materials,
        "minimumOrder": record.minimum_order_quantity,
        "casePack": record.case_pack_quantity,
        "color": record.color,
        "attributes": list(record.attributes),
        "source": record.source,
        "_scrapedAt": record.scraped_at.isoformat().replace("+00:00", "Z"),
        "_detailsFetched": record.detail_fetch_succeeded,
        "error": record.error,
    }
    return {key: item[key] for key in DATASET_FIELDS}


def _row_to_values(item: dict[str, Any]) -> list[Any]:
    values: list[Any] = []
    for key in DATASET_FIELDS:
        value = item.get(key)
        if isinstance(value, list):
            value = "; ".join(str(entry) for entry in value)
        values.append("" if value is None else value)
    return values


class CsvSink:
    """Appends each batch to a CSV file, writing the header once."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self.pushed = 0

    async def push(self, batch: Sequence[EnrichedRecord]) -> None:
        os.makedirs(self.path.parent, exist_ok=True)
        needs_header = not self.path.exists() or self.path.stat().st_size == 0
        with self.path.open("a", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle)
            if needs_header:
                writer.writerow(DATASET_FIELDS)
            for record in batch:
                writer.writerow(_row_to_values(to_dataset_item(record)))
        self.pushed += len(batch)
        LOGGER.info("Wrote batch to CSV | rows=%d | path=%s", len(batch), self.path)


class JsonlSink:
    """Appends each record as one JSON object per line."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self.pushed = 0

    async def push(self, batch: Sequence[EnrichedRecord]) -> None:
        os.makedirs(self.path.parent, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            for record in batch:
                handle.write(json.dumps(to_dataset_item(record), ensure_ascii=False) + "\n")
        self.pushed += len(batch)
        LOGGER.info("Wrote batch to JSONL | rows=%d | path=%s", len(batch), self.path)


class ApifyDatasetSink:
    """Pushes each batch to the default dataset of the running actor."""

    def __init__(self, actor: Any) -> None:
        self.actor = actor
        self.pushed = 0

    async def push(self, batch: Sequence[EnrichedRecord]) -> None:
        await self.actor.push_data([to_dataset_item(record) for record in batch])
        self.pushed += len(batch)
        self.actor.log.info(f"Pushed {len(batch)} products to dataset (total {self.pushed})")


class MultiSink:
    """Forwards each batch to every wrapped sink in order."""

    def __init__(self, *sinks: Any) -> None:
        self.sinks = list(sinks)

    async def push(self, batch: Sequence[EnrichedRecord]) -> None:
        for sink in self.sinks:
            await sink.push(batch)

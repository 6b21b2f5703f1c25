"""Chunked, paced detail enrichment with incremental persistence."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Protocol, Sequence

from faire_scout.extractors.schemas import EnrichedRecord, ListingRecord
from faire_scout.health import HealthMonitor
from faire_scout.logging_config import get_logger

LOGGER = get_logger(__name__)

DEFAULT_CONCURRENCY = 10
DEFAULT_PACING_MS = (1000, 2000)


class Enricher(Protocol):
    async def enrich(self, record: ListingRecord) -> EnrichedRecord: ...


class RecordSink(Protocol):
    async def push(self, batch: Sequence[EnrichedRecord]) -> None: ...


@dataclass
class BatchReport:
    index: int
    size: int
    persisted: int
    fetched: int
    failed: list[str] = field(default_factory=list)


@dataclass
class ScheduleResult:
    batches: list[BatchReport] = field(default_factory=list)
    persisted: int = 0
    failed: list[EnrichedRecord] = field(default_factory=list)
    halted_early: bool = False


def chunked(records: Sequence[ListingRecord], size: int) -> list[list[ListingRecord]]:
    return [list(records[start:start + size]) for start in range(0, len(records), size)]


class BatchScheduler:
    """Enrich a backlog in chunks of ``concurrency``, persisting each chunk before the next."""

    def __init__(
        self,
        enricher: Enricher,
        sink: RecordSink,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        pacing_ms: tuple[int, int] = DEFAULT_PACING_MS,
        target: int | None = None,
        persist_failed: bool = False,
        health: HealthMonitor | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if concurrency <= 0:
            raise ValueError("concurrency must be positive")
        low, high = pacing_ms
        self.enricher = enricher
        self.sink = sink
        self.concurrency = concurrency
        self.pacing_ms = (max(low, 0), max(high, low, 0))
        self.target = target
        self.persist_failed = persist_failed
        self.health = health
        self._sleep = sleep
        self._rng = rng or random.Random()

    def pacing_delay(self) -> float:
        """Seconds to wait between chunks, including any health back-off."""

        low, high = self.pacing_ms
        delay = self._rng.uniform(low, high) / 1000.0
        if self.health is not None:
            delay += self.health.recommended_extra_delay()
        return delay

    async def _process(self, record: ListingRecord) -> EnrichedRecord:
        if record.has_complete_data:
            return EnrichedRecord.from_listing(record)
        return await self.enricher.enrich(record)

    def _target_reached(self, persisted: int) -> bool:
        return self.target is not None and persisted >= self.target

    async def run(self, records: Iterable[ListingRecord]) -> ScheduleResult:
        backlog = list(records)
        chunks = chunked(backlog, self.concurrency)
        result = ScheduleResult()
        if not chunks:
            return result

        LOGGER.info(
            "Fetching details | products=%d | batches=%d | concurrency=%d",
            len(backlog),
            len(chunks),
            self.concurrency,
        )

        for index, chunk in enumerate(chunks, start=1):
            if self._target_reached(result.persisted):
                result.halted_early = True
                LOGGER.info("Target reached; skipping remaining batches | next=%d", index)
                break

            enriched = await asyncio.gather(*(self._process(record) for record in chunk))
            failures = [record for record in enriched if record.error is not None]
            keep = list(enriched) if self.persist_failed else [r for r in enriched if r.error is None]
            if self.target is not None:
                keep = keep[: max(self.target - result.persisted, 0)]

            if keep:
                await self.sink.push(keep)
            result.persisted += len(keep)
            result.failed.extend(failures)
            result.batches.append(
                BatchReport(
                    index=index,
                    size=len(chunk),
                    persisted=len(keep),
                    fetched=sum(1 for record in chunk if not record.has_complete_data),
                    failed=[record.product_id for record in failures],
                )
            )
            LOGGER.info(
                "Batch complete | batch=%d/%d | ok=%d/%d | pushed=%d | total=%d",
                index,
                len(chunks),
                len(chunk) - len(failures),
                len(chunk),
                len(keep),
                result.persisted,
            )

            if index < len(chunks) and not self._target_reached(result.persisted):
                await self._sleep(self.pacing_delay())

        LOGGER.info(
            "Detail fetching finished | persisted=%d | failed=%d",
            result.persisted,
            len(result.failed),
        )
        return result

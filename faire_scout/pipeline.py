"""One harvest run: explore the listing page, then enrich and persist in batches."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from faire_scout.aggregator import CandidateAggregator
from faire_scout.enrichment.detail import DetailEnricher
from faire_scout.explorer import ExplorationController, ExplorationState
from faire_scout.health import HealthMonitor
from faire_scout.logging_config import get_logger
from faire_scout.normalizers import has_name_and_brand, never_complete
from faire_scout.playwright_env import batch_delay_bounds
from faire_scout.retailers.faire import FaireListingSession
from faire_scout.scheduler import BatchScheduler, RecordSink
from faire_scout.settings import RunSettings
from faire_scout.transport import RequestsTransport, Transport

LOGGER = get_logger(__name__)


@dataclass
class RunSummary:
    target: int
    collected: int = 0
    accepted: int = 0
    cycles: int = 0
    exploration_state: str = ""
    batches: int = 0
    failed_details: list[str] = field(default_factory=list)

    @property
    def shortfall(self) -> int:
        return max(self.target - self.collected, 0)

    @property
    def success_rate(self) -> float:
        if self.target <= 0:
            return 0.0
        return self.collected / self.target * 100

    def banner_lines(self) -> list[str]:
        lines = [
            "=" * 60,
            "Scraping completed!",
            f"Total products collected: {self.collected}/{self.target}",
            f"Success rate: {self.success_rate:.1f}%",
        ]
        if self.exploration_state == ExplorationState.EXHAUSTED.value and self.shortfall:
            lines.append(f"Listing exhausted after {self.cycles} cycles; {self.shortfall} short of target")
        if self.failed_details:
            lines.append(f"Detail fetch failures: {len(self.failed_details)}")
        lines.append("=" * 60)
        return lines


async def harvest(
    settings: RunSettings,
    sink: RecordSink,
    *,
    session_factory: Callable[..., Any] = FaireListingSession,
    transport: Transport | None = None,
    health: HealthMonitor | None = None,
) -> RunSummary:
    """Run exploration then batched enrichment; only a listing ``PageLoadError`` escapes."""

    if health is None:
        health = HealthMonitor(run_id=uuid.uuid4().hex[:12], log_path=Path(settings.health_log_path))
    completeness = never_complete if settings.force_detail_fetch else has_name_and_brand
    aggregator = CandidateAggregator(settings.results_wanted)

    LOGGER.info(
        "Starting harvest | url=%s | target=%d | force_details=%s",
        settings.start_url,
        settings.results_wanted,
        settings.force_detail_fetch,
    )

    async with session_factory(
        settings.start_url,
        cookies=settings.cookies,
        proxy_url=settings.proxy_url,
    ) as session:
        controller = ExplorationController(
            session,
            session.extractors,
            aggregator,
            stall_threshold=settings.stall_threshold,
            max_cycles=settings.max_cycles,
            initial_settle_seconds=settings.initial_settle_seconds,
            settle_seconds=settings.settle_seconds,
            reveal_timeout=settings.reveal_timeout_seconds,
            extract_timeout=settings.extract_timeout_seconds,
            completeness=completeness,
            health=health,
        )
        exploration = await controller.run()

    summary = RunSummary(
        target=settings.results_wanted,
        accepted=len(exploration.accepted),
        cycles=exploration.cycles,
        exploration_state=exploration.state.value,
    )
    if not exploration.accepted:
        LOGGER.error("No products captured from any source; possible blocking or page structure change")
        return summary

    complete = sum(1 for record in exploration.accepted if record.has_complete_data)
    LOGGER.info(
        "Listing data ready | accepted=%d | complete=%d | need_details=%d",
        len(exploration.accepted),
        complete,
        len(exploration.accepted) - complete,
    )

    owns_transport = transport is None
    active_transport = transport or RequestsTransport(timeout=settings.detail_timeout_seconds)
    try:
        enricher = DetailEnricher(
            active_transport,
            cookies=settings.cookies,
            proxy_url=settings.proxy_url,
            timeout=settings.detail_timeout_seconds,
            health=health,
        )
        scheduler = BatchScheduler(
            enricher,
            sink,
            concurrency=settings.detail_concurrency,
            pacing_ms=batch_delay_bounds(settings.pacing_ms),
            target=settings.results_wanted,
            persist_failed=settings.persist_failed,
            health=health,
        )
        result = await scheduler.run(exploration.accepted)
    finally:
        if owns_transport and isinstance(active_transport, RequestsTransport):
            active_transport.close()

    summary.collected = result.persisted
    summary.batches = len(result.batches)
    summary.failed_details = [record.product_id for record in result.failed]
    return summary

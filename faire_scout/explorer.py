"""Exploration controller: drives capture cycles on a listing page until done.

States::

    INITIALIZING -> DRAINING | CAPTURING
    CAPTURING    -> DRAINING
    DRAINING     -> DECIDING
    DECIDING     -> CAPTURING | EXHAUSTED | SATISFIED

Every suspension point (settle, reveal, extraction) is an explicit ``await``
with its own timeout. A timeout counts as "nothing produced".
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Sequence

from faire_scout.aggregator import CandidateAggregator
from faire_scout.extractors.schemas import ListingRecord
from faire_scout.health import HealthMonitor
from faire_scout.logging_config import get_logger
from faire_scout.normalizers import CompletenessPolicy, has_name_and_brand, normalize_candidates

LOGGER = get_logger(__name__)


class ExplorationState(str, Enum):
    INITIALIZING = "initializing"
    CAPTURING = "capturing"
    DRAINING = "draining"
    DECIDING = "deciding"
    EXHAUSTED = "exhausted"
    SATISFIED = "satisfied"


TERMINAL_STATES = frozenset({ExplorationState.EXHAUSTED, ExplorationState.SATISFIED})


class ListingSurface(Protocol):
    """Rendering collaborator: a live listing page."""

    async def reveal(self) -> bool: ...

    async def settle(self, seconds: float) -> None: ...

    async def snapshot(self) -> str: ...


class CandidateExtractor(Protocol):
    name: str

    async def extract(self) -> list[dict[str, Any]]: ...


@dataclass
class ExplorationResult:
    state: ExplorationState
    cycles: int
    accepted: tuple[ListingRecord, ...]
    cycle_yields: list[int] = field(default_factory=list)
    target: int = 0

    @property
    def shortfall(self) -> int:
        return max(self.target - len(self.accepted), 0)


class ExplorationController:
    """State machine over one listing page; extractors are tried in the given order."""

    def __init__(
        self,
        surface: ListingSurface,
        extractors: Sequence[CandidateExtractor],
        aggregator: CandidateAggregator,
        *,
        stall_threshold: int = 5,
        max_cycles: int = 50,
        initial_settle_seconds: float = 3.0,
        settle_seconds: float = 1.5,
        settle_timeout: float = 20.0,
        reveal_timeout: float = 30.0,
        extract_timeout: float = 15.0,
        completeness: CompletenessPolicy = has_name_and_brand,
        health: HealthMonitor | None = None,
    ) -> None:
        if stall_threshold <= 0:
            raise ValueError("stall_threshold must be positive")
        self.surface = surface
        self.extractors = list(extractors)
        self.aggregator = aggregator
        self.stall_threshold = stall_threshold
        self.max_cycles = max_cycles
        self.initial_settle_seconds = initial_settle_seconds
        self.settle_seconds = settle_seconds
        self.settle_timeout = settle_timeout
        self.reveal_timeout = reveal_timeout
        self.extract_timeout = extract_timeout
        self.completeness = completeness
        self.health = health

        self.state = ExplorationState.INITIALIZING
        self.cycles = 0
        self.stall_streak = 0
        self.cycle_yields: list[int] = []
        self._pending: list[tuple[str, list[dict[str, Any]]]] = []

    async def run(self) -> ExplorationResult:
        if self.aggregator.is_satisfied():
            self.state = ExplorationState.SATISFIED

        while self.state not in TERMINAL_STATES:
            if self.state is ExplorationState.INITIALIZING:
                await self._settle(self.initial_settle_seconds)
                self._pending = await self._collect()
                if any(batch for _, batch in self._pending):
                    self.state = ExplorationState.DRAINING
                else:
                    LOGGER.info("Initial render produced no candidates; starting capture cycles")
                    self.state = ExplorationState.CAPTURING
            elif self.state is ExplorationState.CAPTURING:
                await self._reveal()
                await self._settle(self.settle_seconds)
                self._pending = await self._collect()
                self.state = ExplorationState.DRAINING
            elif self.state is ExplorationState.DRAINING:
                self._drain()
                self.state = ExplorationState.DECIDING
            elif self.state is ExplorationState.DECIDING:
                self.state = self._decide()

        LOGGER.info(
            "Exploration finished | state=%s | cycles=%d | accepted=%d/%d",
            self.state.value,
            self.cycles,
            len(self.aggregator),
            self.aggregator.target,
        )
        return ExplorationResult(
            state=self.state,
            cycles=self.cycles,
            accepted=self.aggregator.accepted,
            cycle_yields=list(self.cycle_yields),
            target=self.aggregator.target,
        )

    async def _settle(self, seconds: float) -> None:
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self.surface.settle(seconds), timeout=self.settle_timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("Settle wait timed out | seconds=%.1f", seconds)

    async def _reveal(self) -> None:
        try:
            more = await asyncio.wait_for(self.surface.reveal(), timeout=self.reveal_timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("Reveal action timed out | cycle=%d", self.cycles + 1)
            return
        if not more:
            LOGGER.debug("Reveal action reported no further content | cycle=%d", self.cycles + 1)

    async def _collect(self) -> list[tuple[str, list[dict[str, Any]]]]:
        collected: list[tuple[str, list[dict[str, Any]]]] = []
        for extractor in self.extractors:
            try:
                batch = await asyncio.wait_for(extractor.extract(), timeout=self.extract_timeout)
            except asyncio.TimeoutError:
                LOGGER.warning("Extractor timed out | extractor=%s", extractor.name)
                batch = []
            except Exception as exc:
                LOGGER.warning("Extractor failed | extractor=%s | error=%s", extractor.name, exc)
                batch = []
            collected.append((extractor.name, list(batch or [])))
        return collected

    def _drain(self) -> list[ListingRecord]:
        newly_accepted: list[ListingRecord] = []
        raw_total = 0
        for source, batch in self._pending:
            raw_total += len(batch)
            records = normalize_candidates(batch, source=source, completeness=self.completeness)
            newly_accepted.extend(self.aggregator.submit(records))
        self._pending = []

        self.cycles += 1
        self.cycle_yields.append(len(newly_accepted))
        if newly_accepted:
            self.stall_streak = 0
        else:
            self.stall_streak += 1
        if self.health is not None:
            self.health.record_cycle(cycle=self.cycles, new_count=len(newly_accepted))

        LOGGER.info(
            "Capture cycle %d | raw=%d | new=%d | accepted=%d/%d | stall=%d",
            self.cycles,
            raw_total,
            len(newly_accepted),
            len(self.aggregator),
            self.aggregator.target,
            self.stall_streak,
        )
        return newly_accepted

    def _decide(self) -> ExplorationState:
        if self.aggregator.is_satisfied():
            return ExplorationState.SATISFIED
        if self.stall_streak >= self.stall_threshold:
            LOGGER.info(
                "No new products for %d consecutive cycles; exploration exhausted",
                self.stall_streak,
            )
            return ExplorationState.EXHAUSTED
        if self.max_cycles and self.cycles >= self.max_cycles:
            LOGGER.info("Capture cycle limit reached | cycles=%d", self.cycles)
            return ExplorationState.EXHAUSTED
        return ExplorationState.CAPTURING

"""Health monitoring helpers for run anomaly detection."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class HealthState(str, Enum):
    """Overall run health classification."""

    HEALTHY = "healthy"
    SUSPECT = "suspect"
    BLOCKED = "blocked"


@dataclass
class HealthMonitor:
    """Tracks stall cycles and detail failures and logs structured health events."""

    run_id: str
    log_path: Path
    stall_threshold: tuple[int, int] = (3, 6)
    detail_threshold: tuple[int, int] = (3, 8)
    state: HealthState = field(init=False, default=HealthState.HEALTHY)

    def __post_init__(self) -> None:
        self.stall_streak = 0
        self.detail_errors = 0
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def _log(self, event_type: str, message: str, **details: Any) -> None:
        entry = {
            "ts": time.time(),
            "run_id": self.run_id,
            "state": self.state.value,
            "event": event_type,
            "message": message,
            "details": details,
        }
        with self.log_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, ensure_ascii=False) + "\n")

    def _evaluate_state(self) -> None:
        prev = self.state
        if (
            self.stall_streak >= self.stall_threshold[1]
            or self.detail_errors >= self.detail_threshold[1]
        ):
            self.state = HealthState.BLOCKED
        elif (
            self.stall_streak >= self.stall_threshold[0]
            or self.detail_errors >= self.detail_threshold[0]
        ):
            self.state = HealthState.SUSPECT
        else:
            self.state = HealthState.HEALTHY

        if self.state != prev:
            self._log(
                "state_change",
                f"{prev.value} -> {self.state.value}",
                stall_streak=self.stall_streak,
                detail_errors=self.detail_errors,
            )

    def record_cycle(self, *, cycle: int, new_count: int) -> None:
        """Record the yield of one capture cycle."""
        if new_count > 0:
            if self.state != HealthState.HEALTHY:
                self._log("recovered", f"Recovered on cycle {cycle}", items=new_count)
            self.stall_streak = 0
        else:
            self.stall_streak += 1
            self._log("stall_cycle", f"No new products on cycle {cycle}", stall_streak=self.stall_streak)
        self._evaluate_state()

    def record_detail_success(self, *, product_id: str) -> None:
        self.detail_errors = max(0, self.detail_errors - 1)
        self._evaluate_state()

    def record_detail_error(self, *, product_id: str, reason: str) -> None:
        self.detail_errors += 1
        self._log(
            "detail_error",
            reason,
            product=product_id,
            detail_errors=self.detail_errors,
        )
        self._evaluate_state()

    def record_page_error(self, *, url: str, reason: str) -> None:
        self._log("page_error", reason, url=url)

    def recommended_extra_delay(self) -> float:
        if self.state == HealthState.SUSPECT:
            return 5.0
        if self.state == HealthState.BLOCKED:
            return 15.0
        return 0.0

"""Run-scoped deduplication and target accounting for listing records."""

from __future__ import annotations

from typing import Iterable

from faire_scout.extractors.schemas import ListingRecord
from faire_scout.logging_config import get_logger

LOGGER = get_logger(__name__)


class CandidateAggregator:
    """Sole owner of the identity set for one run.

    Records are accepted first-seen-wins in submission order until ``target``
    is reached; later candidates are counted as overflow and discarded.
    """

    def __init__(self, target: int) -> None:
        if target <= 0:
            raise ValueError("target must be a positive integer")
        self.target = target
        self._seen_ids: set[str] = set()
        self._accepted: list[ListingRecord] = []
        self.duplicates = 0
        self.overflow = 0

    @property
    def accepted(self) -> tuple[ListingRecord, ...]:
        return tuple(self._accepted)

    @property
    def remaining(self) -> int:
        return max(self.target - len(self._accepted), 0)

    def __len__(self) -> int:
        return len(self._accepted)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._seen_ids

    def is_satisfied(self) -> bool:
        return len(self._accepted) >= self.target

    def submit(self, records: Iterable[ListingRecord]) -> list[ListingRecord]:
        """Accept unseen records and return the newly accepted ones in order."""

        newly_accepted: list[ListingRecord] = []
        for record in records:
            if record.product_id in self._seen_ids:
                self.duplicates += 1
                continue
            if self.is_satisfied():
                self.overflow += 1
                continue
            self._seen_ids.add(record.product_id)
            self._accepted.append(record)
            newly_accepted.append(record)

        if self.overflow:
            LOGGER.debug("Target reached; discarded overflow candidates | overflow=%d", self.overflow)
        return newly_accepted

import random

import pytest

from faire_scout.aggregator import CandidateAggregator
from faire_scout.extractors.schemas import ListingRecord


def _record(product_id: str, name: str = "") -> ListingRecord:
    return ListingRecord(
        product_id=product_id,
        product_url=f"https://www.faire.com/product/{product_id}",
        name=name,
    )


def test_submit_returns_newly_accepted_in_order() -> None:
    aggregator = CandidateAggregator(target=5)
    accepted = aggregator.submit([_record("a"), _record("b"), _record("a"), _record("c")])
    assert [r.product_id for r in accepted] == ["a", "b", "c"]
    assert aggregator.duplicates == 1
    assert aggregator.remaining == 2
    assert "b" in aggregator
    assert len(aggregator) == 3


def test_first_seen_wins() -> None:
    aggregator = CandidateAggregator(target=3)
    aggregator.submit([_record("a", name="first")])
    aggregator.submit([_record("a", name="second")])
    assert aggregator.accepted[0].name == "first"


def test_target_caps_acceptance() -> None:
    aggregator = CandidateAggregator(target=2)
    accepted = aggregator.submit([_record(pid) for pid in "abcd"])
    assert [r.product_id for r in accepted] == ["a", "b"]
    assert aggregator.is_satisfied()
    assert aggregator.overflow == 2
    assert aggregator.submit([_record("z")]) == []


def test_resubmission_is_idempotent() -> None:
    aggregator = CandidateAggregator(target=10)
    batch = [_record(pid) for pid in "abc"]
    aggregator.submit(batch)
    before = aggregator.accepted
    assert aggregator.submit(batch) == []
    assert aggregator.accepted == before


def test_randomised_duplicate_laden_input_stays_unique_and_capped() -> None:
    rng = random.Random(1729)
    for _ in range(50):
        target = rng.randint(1, 25)
        pool = [f"p{index}" for index in range(rng.randint(1, 40))]
        aggregator = CandidateAggregator(target=target)
        submitted: list[str] = []
        for _ in range(rng.randint(1, 8)):
            batch = [rng.choice(pool) for _ in range(rng.randint(0, 15))]
            submitted.extend(batch)
            aggregator.submit(_record(pid) for pid in batch)

        ids = [record.product_id for record in aggregator.accepted]
        assert len(ids) == len(set(ids))
        assert len(ids) <= target

        expected: list[str] = []
        for pid in submitted:
            if pid not in expected and len(expected) < target:
                expected.append(pid)
        assert ids == expected


def test_target_must_be_positive() -> None:
    with pytest.raises(ValueError):
        CandidateAggregator(target=0)

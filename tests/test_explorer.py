import asyncio
from typing import Any

import pytest

from faire_scout.aggregator import CandidateAggregator
from faire_scout.explorer import ExplorationController, ExplorationState
from faire_scout.health import HealthMonitor
from faire_scout.normalizers import never_complete, normalize_candidates


class DummySurface:
    def __init__(self, *, reveal_delay: float = 0.0) -> None:
        self.reveals = 0
        self.settles: list[float] = []
        self.reveal_delay = reveal_delay

    async def reveal(self) -> bool:
        self.reveals += 1
        if self.reveal_delay:
            await asyncio.sleep(self.reveal_delay)
        return True

    async def settle(self, seconds: float) -> None:
        self.settles.append(seconds)

    async def snapshot(self) -> str:
        return ""


class ScriptedExtractor:
    """Returns one scripted batch per call, then nothing."""

    def __init__(self, name: str, batches: list[list[dict[str, Any]]]) -> None:
        self.name = name
        self.batches = list(batches)
        self.calls = 0

    async def extract(self) -> list[dict[str, Any]]:
        self.calls += 1
        return self.batches.pop(0) if self.batches else []


class FailingExtractor:
    name = "broken"

    async def extract(self) -> list[dict[str, Any]]:
        raise RuntimeError("boom")


class SlowExtractor:
    name = "slow"

    async def extract(self) -> list[dict[str, Any]]:
        await asyncio.sleep(1)
        return [{"token": "late"}]


def _ids(tokens: str) -> list[dict[str, Any]]:
    return [{"token": token, "name": token.upper()} for token in tokens]


def _controller(surface, extractors, target: int, **kwargs) -> ExplorationController:
    kwargs.setdefault("initial_settle_seconds", 0)
    kwargs.setdefault("settle_seconds", 0)
    return ExplorationController(surface, extractors, CandidateAggregator(target), **kwargs)


def test_stall_scenario_exhausts_after_threshold() -> None:
    surface = DummySurface()
    extractor = ScriptedExtractor("network", [_ids("abc")])
    controller = _controller(surface, [extractor], target=10, stall_threshold=5)

    result = asyncio.run(controller.run())

    assert result.state is ExplorationState.EXHAUSTED
    assert result.cycles == 6
    assert result.cycle_yields == [3, 0, 0, 0, 0, 0]
    assert [r.product_id for r in result.accepted] == ["a", "b", "c"]
    assert result.shortfall == 7
    assert surface.reveals == 5


def test_end_to_end_scenario_satisfied_after_two_cycles() -> None:
    surface = DummySurface()
    extractor = ScriptedExtractor("network", [_ids("ab"), _ids("bc")])
    controller = _controller(surface, [extractor], target=3)

    result = asyncio.run(controller.run())

    assert result.state is ExplorationState.SATISFIED
    assert result.cycles == 2
    assert {r.product_id for r in result.accepted} == {"a", "b", "c"}
    assert result.shortfall == 0


def test_empty_initial_render_goes_straight_to_capture() -> None:
    surface = DummySurface()
    extractor = ScriptedExtractor("dom", [[], _ids("a")])
    controller = _controller(surface, [extractor], target=1)

    result = asyncio.run(controller.run())

    assert result.state is ExplorationState.SATISFIED
    assert result.cycles == 1
    assert surface.reveals == 1
    assert result.accepted[0].source == "dom"


def test_extractors_are_probed_in_priority_order_each_cycle() -> None:
    network = ScriptedExtractor("network", [_ids("a")])
    state = ScriptedExtractor("embedded_state", [_ids("ab")])
    dom = ScriptedExtractor("dom", [_ids("bcd")])
    controller = _controller(DummySurface(), [network, state, dom], target=4)

    result = asyncio.run(controller.run())

    assert [(r.product_id, r.source) for r in result.accepted] == [
        ("a", "network"),
        ("b", "embedded_state"),
        ("c", "dom"),
        ("d", "dom"),
    ]
    assert network.calls == state.calls == dom.calls == 1


def test_failing_and_slow_extractors_yield_nothing() -> None:
    good = ScriptedExtractor("network", [_ids("a")])
    controller = _controller(
        DummySurface(),
        [FailingExtractor(), SlowExtractor(), good],
        target=5,
        stall_threshold=1,
        extract_timeout=0.01,
    )

    result = asyncio.run(controller.run())

    assert [r.product_id for r in result.accepted] == ["a"]
    assert result.state is ExplorationState.EXHAUSTED


def test_reveal_timeout_counts_as_empty_cycle() -> None:
    surface = DummySurface(reveal_delay=1)
    controller = _controller(surface, [ScriptedExtractor("dom", [])], target=2, stall_threshold=2, reveal_timeout=0.01)

    result = asyncio.run(controller.run())

    assert result.state is ExplorationState.EXHAUSTED
    assert result.cycle_yields == [0, 0]


def test_max_cycles_bounds_exploration() -> None:
    class Trickle:
        name = "network"

        def __init__(self) -> None:
            self.count = 0

        async def extract(self) -> list[dict[str, Any]]:
            self.count += 1
            return [{"token": f"p{self.count}"}]

    controller = _controller(DummySurface(), [Trickle()], target=100, max_cycles=4)
    result = asyncio.run(controller.run())

    assert result.state is ExplorationState.EXHAUSTED
    assert result.cycles == 4
    assert len(result.accepted) == 4


def test_candidates_without_identifier_do_not_count() -> None:
    extractor = ScriptedExtractor("network", [[{"name": "no id"}, {"token": "a"}]])
    controller = _controller(DummySurface(), [extractor], target=5, stall_threshold=1)
    result = asyncio.run(controller.run())
    assert [r.product_id for r in result.accepted] == ["a"]


def test_completeness_policy_is_applied() -> None:
    raw = [{"token": "a", "name": "A", "brandName": "Brand"}]
    default = asyncio.run(_controller(DummySurface(), [ScriptedExtractor("n", [raw])], target=1).run())
    forced = asyncio.run(
        _controller(DummySurface(), [ScriptedExtractor("n", [raw])], target=1, completeness=never_complete).run()
    )
    assert default.accepted[0].has_complete_data is True
    assert forced.accepted[0].has_complete_data is False


def test_already_satisfied_aggregator_skips_exploration() -> None:
    aggregator = CandidateAggregator(target=1)
    aggregator.submit(normalize_candidates([{"token": "x"}]))
    surface = DummySurface()
    controller = ExplorationController(surface, [ScriptedExtractor("n", [_ids("a")])], aggregator)

    result = asyncio.run(controller.run())

    assert result.state is ExplorationState.SATISFIED
    assert result.cycles == 0
    assert surface.settles == []


def test_health_monitor_sees_each_cycle(tmp_path) -> None:
    health = HealthMonitor(run_id="t", log_path=tmp_path / "health.log")
    controller = _controller(
        DummySurface(),
        [ScriptedExtractor("n", [_ids("a")])],
        target=5,
        stall_threshold=3,
        health=health,
    )
    asyncio.run(controller.run())
    assert health.stall_streak == 3


def test_stall_threshold_must_be_positive() -> None:
    with pytest.raises(ValueError):
        _controller(DummySurface(), [], target=1, stall_threshold=0)

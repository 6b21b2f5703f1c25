import asyncio

import pytest

pytest.importorskip("playwright")

from playwright.async_api import Error as PlaywrightError

from faire_scout.extractors import dom_utils


class DummyPage:
    """Fakes a page whose body grows by ``growth`` px after each scroll."""

    def __init__(self, height: int, *, growth: int = 0, fail: bool = False) -> None:
        self.height = height
        self.growth = growth
        self.fail = fail
        self.position = 900
        self.scrolls = 0

    async def evaluate(self, script: str):
        if self.fail:
            raise PlaywrightError("Target closed")
        if "scrollBy" in script:
            self.scrolls += 1
            self.position += 400
            self.height += self.growth
            return self.position
        return self.height


@pytest.fixture(autouse=True)
def _no_waits(monkeypatch):
    async def instant(*_args, **_kwargs) -> None:
        return None

    monkeypatch.setattr(dom_utils, "human_wait", instant)


def test_scroll_step_reports_growth() -> None:
    page = DummyPage(3000, growth=500)
    assert asyncio.run(dom_utils.scroll_step(page)) is True
    assert page.scrolls >= 1


def test_scroll_step_stops_at_bottom_without_growth() -> None:
    page = DummyPage(1200)
    assert asyncio.run(dom_utils.scroll_step(page)) is False
    assert page.scrolls == 1


def test_scroll_step_tolerates_browser_errors() -> None:
    assert asyncio.run(dom_utils.scroll_step(DummyPage(1000, fail=True))) is False

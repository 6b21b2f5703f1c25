import asyncio

import pytest

pytest.importorskip("playwright")

from faire_scout.errors import PageLoadError
from faire_scout.pipeline import harvest
from faire_scout.settings import DEFAULT_CONFIG, RunSettings
from faire_scout.transport import FetchResponse

DETAIL_HTML = """
<html><head><meta property="og:description" content="Hand-poured."></head>
<body><div data-testid="product-location">Made in Portugal</div></body></html>
"""


class DummyExtractor:
    name = "network"

    def __init__(self, batches) -> None:
        self.batches = list(batches)

    async def extract(self):
        return self.batches.pop(0) if self.batches else []


class DummySession:
    instances: list["DummySession"] = []

    def __init__(self, start_url, *, cookies=None, proxy_url=None, batches=(), fail=False) -> None:
        self.start_url = start_url
        self.cookies = cookies
        self.closed = False
        self.fail = fail
        self.extractors = [DummyExtractor(batches)]
        DummySession.instances.append(self)

    async def __aenter__(self):
        if self.fail:
            raise PageLoadError("Listing navigation failed", url=self.start_url, status=403)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.closed = True

    async def reveal(self) -> bool:
        return True

    async def settle(self, seconds: float) -> None:
        return None

    async def snapshot(self) -> str:
        return ""


class DummyTransport:
    def __init__(self, failing: set[str] = frozenset()) -> None:
        self.failing = failing
        self.urls: list[str] = []

    async def fetch(self, url, *, headers=None, proxy=None) -> FetchResponse:
        self.urls.append(url)
        if any(url.endswith(pid) for pid in self.failing):
            return FetchResponse(status=503, body="", url=url)
        return FetchResponse(status=200, body=DETAIL_HTML, url=url)


class DummySink:
    def __init__(self) -> None:
        self.records = []

    async def push(self, batch) -> None:
        self.records.extend(batch)


def _settings(tmp_path, **overrides) -> RunSettings:
    overrides.setdefault("results_wanted", 3)
    return RunSettings.from_config(
        DEFAULT_CONFIG,
        initial_settle_seconds=0,
        settle_seconds=0,
        pacing_ms=(0, 0),
        health_log_path=str(tmp_path / "health.log"),
        **overrides,
    )


def _factory(batches, fail=False):
    def build(start_url, **kwargs):
        return DummySession(start_url, batches=batches, fail=fail, **kwargs)

    return build


def test_harvest_explores_then_enriches(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("FAIRE_SCOUT_BATCH_DELAY_MIN_MS", raising=False)
    monkeypatch.delenv("FAIRE_SCOUT_BATCH_DELAY_MAX_MS", raising=False)
    batches = [
        [{"token": "a", "name": "A"}, {"token": "b", "name": "B", "brandName": "Brand"}],
        [{"token": "b"}, {"token": "c", "name": "C"}],
    ]
    transport = DummyTransport(failing={"c"})
    sink = DummySink()

    summary = asyncio.run(
        harvest(_settings(tmp_path), sink, session_factory=_factory(batches), transport=transport)
    )

    assert DummySession.instances[-1].closed
    assert transport.urls == ["https://www.faire.com/product/a", "https://www.faire.com/product/c"]
    assert [record.product_id for record in sink.records] == ["a", "b"]
    a, b = sink.records
    assert a.origin_country == "Portugal"
    assert a.description == "Hand-poured."
    assert a.detail_fetch_succeeded is True
    assert b.detail_fetch_succeeded is False and b.error is None
    assert summary.exploration_state == "satisfied"
    assert summary.cycles == 2
    assert summary.collected == 2
    assert summary.failed_details == ["c"]


def test_harvest_with_nothing_captured_skips_enrichment(tmp_path) -> None:
    transport = DummyTransport()
    summary = asyncio.run(
        harvest(
            _settings(tmp_path, stall_threshold=2),
            DummySink(),
            session_factory=_factory([]),
            transport=transport,
        )
    )

    assert summary.collected == 0
    assert summary.exploration_state == "exhausted"
    assert transport.urls == []
    assert summary.banner_lines()[2] == "Total products collected: 0/3"


def test_force_detail_fetch_visits_complete_records(tmp_path) -> None:
    transport = DummyTransport()
    batches = [[{"token": "a", "name": "A", "brandName": "Brand"}]]

    asyncio.run(
        harvest(
            _settings(tmp_path, results_wanted=1, force_detail_fetch=True),
            DummySink(),
            session_factory=_factory(batches),
            transport=transport,
        )
    )

    assert transport.urls == ["https://www.faire.com/product/a"]


def test_listing_load_failure_propagates(tmp_path) -> None:
    with pytest.raises(PageLoadError):
        asyncio.run(
            harvest(
                _settings(tmp_path),
                DummySink(),
                session_factory=_factory([], fail=True),
                transport=DummyTransport(),
            )
        )

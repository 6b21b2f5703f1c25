from pathlib import Path

import pytest

from faire_scout.errors import ConfigError
from faire_scout.settings import (
    CONFIG_PATH,
    DEFAULT_CONFIG,
    DEFAULT_START_URL,
    RunSettings,
    _deep_merge,
    actor_input_overrides,
    load_config,
    parse_cookies,
    resolve_start_url,
)


def test_deep_merge_overrides_nested_keys_without_mutating_defaults() -> None:
    merged = _deep_merge(DEFAULT_CONFIG, {"run": {"results_wanted": 5}, "extra": 1})
    assert merged["run"]["results_wanted"] == 5
    assert merged["run"]["force_detail_fetch"] is False
    assert merged["extra"] == 1
    assert DEFAULT_CONFIG["run"]["results_wanted"] == 20


def test_load_config_reads_packaged_yaml() -> None:
    config = load_config(CONFIG_PATH)
    assert config["enrichment"]["concurrency"] == 10
    assert config["exploration"]["reveal_timeout_seconds"] == 30.0


def test_load_config_handles_missing_and_invalid_files(tmp_path: Path) -> None:
    assert load_config(tmp_path / "missing.yml") == DEFAULT_CONFIG

    bad = tmp_path / "bad.yml"
    bad.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(bad)


def test_resolve_start_url_precedence() -> None:
    assert resolve_start_url(" https://www.faire.com/category/Home ", "mugs") == "https://www.faire.com/category/Home"
    assert resolve_start_url(None, "scented candles") == "https://www.faire.com/search?q=scented+candles"
    assert resolve_start_url("", "  ") == DEFAULT_START_URL
    assert DEFAULT_START_URL == "https://www.faire.com/search?q=candles"


def test_parse_cookies_accepts_several_shapes() -> None:
    assert parse_cookies(None) == []
    assert parse_cookies('[{"name": "sid", "value": "1"}, {"value": "orphan"}]') == [{"name": "sid", "value": "1"}]
    assert parse_cookies("sid=1; theme = dark; junk") == [
        {"name": "sid", "value": "1"},
        {"name": "theme", "value": "dark"},
    ]
    with pytest.raises(ConfigError):
        parse_cookies("[not json")
    with pytest.raises(ConfigError):
        parse_cookies({"name": "sid"})


def test_run_settings_from_config_applies_overrides() -> None:
    settings = RunSettings.from_config(
        DEFAULT_CONFIG,
        search_query="mugs",
        results_wanted=7,
        detail_concurrency=None,
        cookies="sid=abc",
    )

    assert settings.start_url == "https://www.faire.com/search?q=mugs"
    assert settings.results_wanted == 7
    assert settings.detail_concurrency == 10
    assert settings.cookies == [{"name": "sid", "value": "abc"}]
    assert settings.pacing_ms == (1000, 2000)
    assert settings.csv_path == "output/faire_products.csv"


@pytest.mark.parametrize(
    "overrides",
    [
        {"results_wanted": 0},
        {"results_wanted": -3},
        {"stall_threshold": 0},
        {"detail_concurrency": 0},
        {"pacing_ms": (2000, 1000)},
    ],
)
def test_run_settings_rejects_invalid_values(overrides) -> None:
    with pytest.raises(ConfigError):
        RunSettings.from_config(DEFAULT_CONFIG, **overrides)


def test_actor_input_overrides_maps_camel_case_keys() -> None:
    overrides = actor_input_overrides(
        {
            "startUrl": "https://www.faire.com/brand/b_1",
            "resultsWanted": 40,
            "forceDetailFetch": True,
            "searchQuery": "",
            "unknownKey": 1,
        }
    )
    assert overrides == {
        "start_url": "https://www.faire.com/brand/b_1",
        "results_wanted": 40,
        "force_detail_fetch": True,
    }
    assert actor_input_overrides(None) == {}

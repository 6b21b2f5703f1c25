"""Run configuration: defaults, YAML overrides and validated run settings."""

from __future__ import annotations

import json
from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import quote_plus

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from faire_scout.errors import ConfigError
from faire_scout.logging_config import get_logger

LOGGER = get_logger(__name__)

CONFIG_PATH = Path(__file__).with_name("config.yml")
SEARCH_URL_TEMPLATE = "https://www.faire.com/search?q={query}"
DEFAULT_START_URL = SEARCH_URL_TEMPLATE.format(query="candles")

DEFAULT_CONFIG: dict[str, Any] = {
    "run": {
        "start_url": None,
        "search_query": "",
        "results_wanted": 20,
        "force_detail_fetch": False,
        "cookies": [],
        "proxy_url": None,
    },
    "exploration": {
        "stall_threshold": 5,
        "max_cycles": 50,
        "initial_settle_seconds": 3.0,
        "settle_seconds": 1.5,
        "reveal_timeout_seconds": 30.0,
        "extract_timeout_seconds": 15.0,
    },
    "enrichment": {
        "concurrency": 10,
        "pacing_ms": [1000, 2000],
        "timeout_seconds": 30.0,
        "persist_failed": False,
    },
    "output": {
        "csv_path": "output/faire_products.csv",
        "jsonl_path": None,
    },
    "health": {
        "log_path": "logs/health.log",
    },
}

# Apify input key -> RunSettings field
ACTOR_INPUT_KEYS: dict[str, str] = {
    "startUrl": "start_url",
    "searchQuery": "search_query",
    "resultsWanted": "results_wanted",
    "cookies": "cookies",
    "detailConcurrency": "detail_concurrency",
    "stallThreshold": "stall_threshold",
    "maxCycles": "max_cycles",
    "forceDetailFetch": "force_detail_fetch",
    "persistFailed": "persist_failed",
}


def _deep_merge(default: Any, override: Any) -> Any:
    if not isinstance(default, dict) or not isinstance(override, dict):
        return deepcopy(override)

    merged: dict[str, Any] = deepcopy(default)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def load_config(path: Path = CONFIG_PATH) -> dict[str, Any]:
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    else:
        LOGGER.warning("Configuration file %s not found; using defaults", path)
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping")
    return _deep_merge(DEFAULT_CONFIG, data) if data else deepcopy(DEFAULT_CONFIG)


def resolve_start_url(start_url: str | None, search_query: str | None) -> str:
    """Explicit URL, else a search URL for ``search_query``, else the default search."""

    if start_url and start_url.strip():
        return start_url.strip()
    if search_query and search_query.strip():
        return SEARCH_URL_TEMPLATE.format(query=quote_plus(search_query.strip()))
    return DEFAULT_START_URL


def parse_cookies(raw: Any) -> list[dict[str, Any]]:
    """Accept a cookie list, a JSON string of one, or a ``name=value; ...`` header string."""

    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("["):
            try:
                raw = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"cookies is not valid JSON: {exc}") from exc
        else:
            pairs = [part.split("=", 1) for part in text.split(";") if "=" in part]
            return [{"name": name.strip(), "value": value.strip()} for name, value in pairs if name.strip()]
    if not isinstance(raw, list):
        raise ConfigError("cookies must be a list of {name, value} objects")
    return [dict(cookie) for cookie in raw if isinstance(cookie, Mapping) and cookie.get("name")]


class RunSettings(BaseModel):
    """Validated settings for one harvest run."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    start_url: str
    results_wanted: int = Field(default=20, gt=0)
    cookies: list[dict[str, Any]] = Field(default_factory=list)
    proxy_url: str | None = None
    force_detail_fetch: bool = False

    stall_threshold: int = Field(default=5, gt=0)
    max_cycles: int = Field(default=50, ge=0)
    initial_settle_seconds: float = Field(default=3.0, ge=0)
    settle_seconds: float = Field(default=1.5, ge=0)
    reveal_timeout_seconds: float = Field(default=30.0, gt=0)
    extract_timeout_seconds: float = Field(default=15.0, gt=0)

    detail_concurrency: int = Field(default=10, gt=0)
    pacing_ms: tuple[int, int] = (1000, 2000)
    detail_timeout_seconds: float = Field(default=30.0, gt=0)
    persist_failed: bool = False

    csv_path: str | None = None
    jsonl_path: str | None = None
    health_log_path: str = "logs/health.log"

    @field_validator("cookies", mode="before")
    @classmethod
    def _parse_cookies(cls, value: Any) -> list[dict[str, Any]]:
        return parse_cookies(value)

    @model_validator(mode="after")
    def _check_pacing(self) -> "RunSettings":
        low, high = self.pacing_ms
        if low < 0 or high < low:
            raise ValueError("pacing_ms must be a non-negative (min, max) pair with min <= max")
        return self

    @classmethod
    def from_config(cls, config: Mapping[str, Any], **overrides: Any) -> "RunSettings":
        """Flatten a merged config mapping, apply non-``None`` overrides and validate."""

        run = config.get("run", {})
        exploration = config.get("exploration", {})
        enrichment = config.get("enrichment", {})
        output = config.get("output", {})
        health = config.get("health", {})

        values: dict[str, Any] = {
            "start_url": run.get("start_url"),
            "search_query": run.get("search_query"),
            "results_wanted": run.get("results_wanted"),
            "cookies": run.get("cookies"),
            "proxy_url": run.get("proxy_url"),
            "force_detail_fetch": run.get("force_detail_fetch"),
            "stall_threshold": exploration.get("stall_threshold"),
            "max_cycles": exploration.get("max_cycles"),
            "initial_settle_seconds": exploration.get("initial_settle_seconds"),
            "settle_seconds": exploration.get("settle_seconds"),
            "reveal_timeout_seconds": exploration.get("reveal_timeout_seconds"),
            "extract_timeout_seconds": exploration.get("extract_timeout_seconds"),
            "detail_concurrency": enrichment.get("concurrency"),
            "pacing_ms": tuple(enrichment.get("pacing_ms") or (1000, 2000)),
            "detail_timeout_seconds": enrichment.get("timeout_seconds"),
            "persist_failed": enrichment.get("persist_failed"),
            "csv_path": output.get("csv_path"),
            "jsonl_path": output.get("jsonl_path"),
            "health_log_path": health.get("log_path"),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        values["start_url"] = resolve_start_url(values.get("start_url"), values.pop("search_query", None))
        values = {key: value for key, value in values.items() if value is not None}

        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc


def actor_input_overrides(actor_input: Mapping[str, Any] | None) -> dict[str, Any]:
    """Translate camelCase actor input keys into ``RunSettings.from_config`` overrides."""

    overrides: dict[str, Any] = {}
    for key, field_name in ACTOR_INPUT_KEYS.items():
        if actor_input and key in actor_input and actor_input[key] not in (None, ""):
            overrides[field_name] = actor_input[key]
    return overrides

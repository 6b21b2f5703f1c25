"""Command-line interface entry point for faire-scout."""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any, Iterable

from dotenv import load_dotenv

from faire_scout.errors import ConfigError, PageLoadError
from faire_scout.logging_config import get_logger
from faire_scout.pipeline import RunSummary, harvest
from faire_scout.settings import CONFIG_PATH, RunSettings, load_config
from faire_scout.storage.repo import CsvSink, JsonlSink, MultiSink

LOGGER = get_logger(__name__)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the application."""

    parser = argparse.ArgumentParser(
        description="Collect and enrich Faire wholesale product listings."
    )
    parser.add_argument("--start-url", dest="start_url", help="Listing URL to explore.")
    parser.add_argument("--query", dest="search_query", help="Search query used when no start URL is given.")
    parser.add_argument("--results", dest="results_wanted", type=int, help="Number of products wanted.")
    parser.add_argument(
        "--cookies",
        help="Session cookies: a JSON list, a 'name=value; ...' string, or @path to a JSON file.",
    )
    parser.add_argument("--proxy", dest="proxy_url", help="Proxy URL for the browser and detail fetches.")
    parser.add_argument(
        "--concurrency",
        dest="detail_concurrency",
        type=int,
        help="Detail pages fetched concurrently per batch (default: 10).",
    )
    parser.add_argument(
        "--stall-threshold",
        dest="stall_threshold",
        type=int,
        help="Consecutive empty capture cycles before giving up (default: 5).",
    )
    parser.add_argument("--max-cycles", dest="max_cycles", type=int, help="Upper bound on capture cycles.")
    parser.add_argument(
        "--force-details",
        dest="force_detail_fetch",
        action="store_true",
        default=None,
        help="Visit every product detail page even when listing data looks complete.",
    )
    parser.add_argument(
        "--persist-failed",
        dest="persist_failed",
        action="store_true",
        default=None,
        help="Also write records whose detail fetch failed.",
    )
    parser.add_argument("--csv", dest="csv_path", help="CSV output path.")
    parser.add_argument("--jsonl", dest="jsonl_path", help="JSON-lines output path.")
    parser.add_argument("--config", type=Path, default=CONFIG_PATH, help="YAML configuration file.")

    args = parser.parse_args(list(argv) if argv is not None else None)

    for name in ("results_wanted", "detail_concurrency", "stall_threshold"):
        value = getattr(args, name)
        if value is not None and value <= 0:
            parser.error(f"--{name.replace('_', '-')} must be a positive integer")

    if args.cookies and args.cookies.startswith("@"):
        cookie_path = Path(args.cookies[1:])
        try:
            args.cookies = json.loads(cookie_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            parser.error(f"Unable to read cookies from {cookie_path}: {exc}")

    return args


def build_settings(args: argparse.Namespace) -> RunSettings:
    config = load_config(args.config)
    overrides: dict[str, Any] = {
        "start_url": args.start_url,
        "search_query": args.search_query,
        "results_wanted": args.results_wanted,
        "cookies": args.cookies,
        "proxy_url": args.proxy_url,
        "detail_concurrency": args.detail_concurrency,
        "stall_threshold": args.stall_threshold,
        "max_cycles": args.max_cycles,
        "force_detail_fetch": args.force_detail_fetch,
        "persist_failed": args.persist_failed,
        "csv_path": args.csv_path,
        "jsonl_path": args.jsonl_path,
    }
    return RunSettings.from_config(config, **overrides)


def build_sink(settings: RunSettings) -> MultiSink:
    sinks: list[Any] = []
    if settings.csv_path:
        sinks.append(CsvSink(settings.csv_path))
    if settings.jsonl_path:
        sinks.append(JsonlSink(settings.jsonl_path))
    if not sinks:
        raise ConfigError("No output configured; set output.csv_path or pass --csv/--jsonl")
    return MultiSink(*sinks)


def print_summary(summary: RunSummary) -> None:
    for line in summary.banner_lines():
        print(line)


async def _async_main(argv: Iterable[str] | None = None) -> RunSummary:
    args = parse_args(argv)
    load_dotenv()

    settings = build_settings(args)
    sink = build_sink(settings)
    summary = await harvest(settings, sink)
    print_summary(summary)
    return summary


def main(argv: Iterable[str] | None = None) -> None:
    try:
        asyncio.run(_async_main(argv))
    except ConfigError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        raise SystemExit(2) from exc
    except PageLoadError as exc:
        LOGGER.error("Listing page could not be loaded: %s", exc)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:  # pragma: no cover - interactive safety
        LOGGER.info("Interrupted by user")


if __name__ == "__main__":
    main()

"""Apify actor entry point: reads actor input, runs a harvest, pushes to the dataset."""

from __future__ import annotations

import asyncio
from typing import Any

from apify import Actor

from faire_scout.errors import ConfigError, PageLoadError
from faire_scout.pipeline import harvest
from faire_scout.settings import RunSettings, actor_input_overrides, load_config
from faire_scout.storage.repo import ApifyDatasetSink

DEFAULT_PROXY_GROUPS = ["RESIDENTIAL"]


async def _resolve_proxy_url(proxy_input: dict[str, Any] | None) -> str | None:
    try:
        if proxy_input:
            proxy_config = await Actor.create_proxy_configuration(actor_proxy_input=proxy_input)
        else:
            proxy_config = await Actor.create_proxy_configuration(groups=DEFAULT_PROXY_GROUPS)
    except Exception as exc:
        Actor.log.warning(f"Failed to create proxy config: {exc}. Running without proxies.")
        return None
    if proxy_config is None:
        return None
    return await proxy_config.new_url()


async def main() -> None:
    async with Actor:
        actor_input = await Actor.get_input() or {}

        overrides = actor_input_overrides(actor_input)
        overrides["proxy_url"] = await _resolve_proxy_url(actor_input.get("proxyConfiguration"))
        # Dataset is the only output when running as an actor.
        overrides.update(csv_path="", jsonl_path="")
        try:
            settings = RunSettings.from_config(load_config(), **overrides)
        except ConfigError as exc:
            Actor.log.error(f"Invalid input: {exc}")
            raise

        Actor.log.info("=" * 60)
        Actor.log.info("Faire product scout")
        Actor.log.info("=" * 60)
        Actor.log.info(f"Start URL: {settings.start_url}")
        Actor.log.info(f"Results wanted: {settings.results_wanted}")
        Actor.log.info(f"Detail concurrency: {settings.detail_concurrency}")
        Actor.log.info(f"Force detail fetch: {settings.force_detail_fetch}")
        if settings.cookies:
            Actor.log.info(f"Using {len(settings.cookies)} session cookies")

        try:
            summary = await harvest(settings, ApifyDatasetSink(Actor))
        except PageLoadError as exc:
            Actor.log.error(f"Listing page could not be loaded: {exc}")
            raise

        for line in summary.banner_lines():
            Actor.log.info(line)
        await Actor.set_status_message(f"Collected {summary.collected}/{summary.target} products")


if __name__ == "__main__":
    asyncio.run(main())

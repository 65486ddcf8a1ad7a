#!/usr/bin/env python3
"""Reconcile the list history against the metadata cache and report derived views."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Dict, List, Sequence

import yaml

from listlens.analytics import ListAnalytics
from listlens.config import ConfigurationError, load_config
from listlens.ingestion import CatalogClientError, ImageSize, ResourceFetchError
from listlens.models import MetadataFormatError, MetadataRecord, RatingKind
from listlens.pipeline import ListDataset, load_dataset
from listlens.storage import MissingMetadataError, SnapshotFormatError

LOGGER = logging.getLogger("listlens.refresh")

SUMMARY_LIMIT = 5


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fill missing IGDB metadata for the latest list.")
    parser.add_argument("--config", help="Optional JSON or YAML config file.")
    parser.add_argument("--data-root", help="Directory holding list.json, meta.json and res/.")
    parser.add_argument(
        "--prefetch-images",
        action="store_true",
        help="Download every cover and logo referenced by the metadata into the resource cache.",
    )
    parser.add_argument(
        "--image-size",
        choices=[size.name.lower() for size in ImageSize],
        default="hd",
        help="IGDB size variant used with --prefetch-images.",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default INFO).")
    return parser.parse_args(argv)


def image_urls(records: Sequence[MetadataRecord]) -> List[str]:
    """Every distinct image URL referenced by the records, in first-seen order."""

    urls: Dict[str, None] = {}
    for record in records:
        if record.cover:
            urls.setdefault(record.cover.url, None)
        for engine in record.game_engines:
            if engine.logo:
                urls.setdefault(engine.logo.url, None)
        for involved in record.involved_companies:
            if involved.company.logo:
                urls.setdefault(involved.company.logo.url, None)
        for platform in record.platforms:
            if platform.platform_logo:
                urls.setdefault(platform.platform_logo.url, None)
    return list(urls)


def build_summary(dataset: ListDataset, *, images: int | None = None) -> Dict[str, Any]:
    analytics: ListAnalytics = dataset.analytics
    dates = analytics.dates()
    release_range = analytics.release_date_range()
    diffs = analytics.rank_diffs()
    summary: Dict[str, Any] = {
        "status": "succeeded",
        "lists": len(dates),
        "first_date": dates[0].isoformat() if dates else None,
        "latest_date": dates[-1].isoformat() if dates else None,
        "records": len(dataset.store),
        "fetched": dataset.fetched,
        "list_toppers": [
            {"id": item_id.to_json(), "days": duration.days}
            for item_id, duration in analytics.extrema(True)[:SUMMARY_LIMIT]
        ],
        "barrel_bottoms": [
            {"id": item_id.to_json(), "days": duration.days}
            for item_id, duration in analytics.extrema(False)[:SUMMARY_LIMIT]
        ],
        "top_rated": [
            {"name": record.name, "rating": round(value, 2)}
            for value, record in analytics.ranked_by_metric(RatingKind.TOTAL)[:SUMMARY_LIMIT]
        ],
        "rank_diffs_available": diffs is not None,
        "release_date_range": None
        if release_range is None
        else [release_range[0].date().isoformat(), release_range[1].date().isoformat()],
    }
    if images is not None:
        summary["images"] = images
    return summary


async def _run(args: argparse.Namespace) -> Dict[str, Any]:
    config = load_config(args.config, data_root=args.data_root)
    dataset = await load_dataset(config)
    try:
        images = None
        if args.prefetch_images:
            size = ImageSize[args.image_size.upper()]
            urls = image_urls(dataset.store.records())
            LOGGER.info("Prefetching %d images", len(urls))
            await dataset.resources.get_many((size, url) for url in urls)
            images = len(urls)
        return build_summary(dataset, images=images)
    finally:
        await dataset.resources.aclose()


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        summary = asyncio.run(_run(args))
    except (
        ConfigurationError,
        OSError,
        SnapshotFormatError,
        MetadataFormatError,
        MissingMetadataError,
        CatalogClientError,
        ResourceFetchError,
        ValueError,
        yaml.YAMLError,
    ) as exc:
        LOGGER.error("%s", exc)
        print(json.dumps({"status": "failed", "error": str(exc)}, indent=2, sort_keys=True))
        return 1
    print(json.dumps(summary, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""Startup orchestration: load the list, fill metadata gaps, expose read-only views."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from listlens.analytics.engine import ListAnalytics
from listlens.config import ListlensConfig, resolve_credentials
from listlens.ingestion.catalog_client import CatalogClient
from listlens.ingestion.resource_cache import ResourceCache
from listlens.models import ItemId
from listlens.storage.metadata_store import MetadataStore, MissingMetadataError, reconcile
from listlens.storage.snapshot_store import SnapshotHistory, load_history

LOGGER = logging.getLogger(__name__)


@dataclass
class ListDataset:
    """Everything the rendering layer reads once reconciliation has finished."""

    history: SnapshotHistory
    store: MetadataStore
    analytics: ListAnalytics
    resources: ResourceCache
    fetched: int = 0


async def refresh_metadata(
    history: SnapshotHistory,
    store: MetadataStore,
    config: ListlensConfig,
    *,
    catalog_client: CatalogClient | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> int:
    """Fetch metadata for catalog ids on the latest list that the store lacks.

    Credentials are only resolved when something is missing.  Returns the
    number of records added.
    """

    missing = reconcile(history, store)
    if not missing:
        LOGGER.info("Metadata is complete for the latest list")
        return 0

    LOGGER.info("Downloading missing metadata for %d items", len(missing))
    client = catalog_client
    if client is None:
        client_id, client_secret = resolve_credentials(config)
        client = CatalogClient(
            client_id,
            client_secret,
            http_client=http_client,
            timeout=config.catalog.timeout_seconds,
            rate_limit_cooldown=config.catalog.rate_limit_cooldown_seconds,
            token_url=config.catalog.token_url,
            games_url=config.catalog.games_url,
        )
    try:
        records = await client.fetch_missing(missing, batch_size=config.catalog.batch_size)
    finally:
        if catalog_client is None:
            await client.aclose()

    added = store.merge(records)
    unresolved = sorted((item_id for item_id in missing if item_id not in store), key=ItemId.sort_key)
    if unresolved:
        names = ", ".join(f'"{item_id}"' for item_id in unresolved)
        raise MissingMetadataError(f"IGDB returned no metadata for {names}", item_ids=unresolved)
    LOGGER.info("Downloaded missing metadata (%d new records)", added)
    return added


async def load_dataset(
    config: ListlensConfig,
    *,
    catalog_client: CatalogClient | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ListDataset:
    """Load the history and metadata, reconcile, and build the read-only views."""

    paths = config.paths
    history = load_history(paths.list_path)
    store = MetadataStore.load(paths.meta_path, paths.meta_template_path)
    fetched = await refresh_metadata(
        history,
        store,
        config,
        catalog_client=catalog_client,
        http_client=http_client,
    )
    resources = ResourceCache(
        paths.resource_root,
        http_client=http_client,
        max_connections=config.resources.max_connections,
        timeout=config.resources.timeout_seconds,
    )
    return ListDataset(
        history=history,
        store=store,
        analytics=ListAnalytics(history, store),
        resources=resources,
        fetched=fetched,
    )


__all__ = ["ListDataset", "load_dataset", "refresh_metadata"]

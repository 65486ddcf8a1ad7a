"""Configuration loader for metadata refresh runs."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from listlens.paths import (
    LIST_FILENAME,
    META_FILENAME,
    META_TEMPLATE_FILENAME,
    RESOURCE_DIRNAME,
    get_data_root,
)


class ConfigurationError(RuntimeError):
    """Raised when required configuration or credentials are missing."""


@dataclass(frozen=True)
class PathsConfig:
    """Where the list, metadata cache and resource directory live."""

    data_root: Path = field(default_factory=get_data_root)
    list_file: str = LIST_FILENAME
    meta_file: str = META_FILENAME
    meta_template_file: str = META_TEMPLATE_FILENAME
    resource_dir: str = RESOURCE_DIRNAME

    @property
    def list_path(self) -> Path:
        return self.data_root / self.list_file

    @property
    def meta_path(self) -> Path:
        return self.data_root / self.meta_file

    @property
    def meta_template_path(self) -> Path:
        return self.data_root / self.meta_template_file

    @property
    def resource_root(self) -> Path:
        return self.data_root / self.resource_dir


@dataclass(frozen=True)
class CatalogConfig:
    """IGDB endpoint and rate-limit knobs."""

    token_url: str = "https://id.twitch.tv/oauth2/token"
    games_url: str = "https://api.igdb.com/v4/games"
    timeout_seconds: float = 30.0
    rate_limit_cooldown_seconds: float = 60.0
    batch_size: int = 500
    client_id_env: str = "CLIENT_ID"
    client_secret_env: str = "CLIENT_SECRET"


@dataclass(frozen=True)
class ResourceConfig:
    """Image download concurrency."""

    max_connections: int = 8
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class ListlensConfig:
    """Top-level configuration surface."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    resources: ResourceConfig = field(default_factory=ResourceConfig)


def _load_mapping(path: Path) -> Mapping[str, Any]:
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix in {".yml", ".yaml"}:
        payload = yaml.safe_load(text)
    else:
        payload = json.loads(text)
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ValueError("listlens config must map keys to values.")
    return payload


def load_config(path: Path | str | None = None, *, data_root: Path | str | None = None) -> ListlensConfig:
    """Load configuration from disk, or return defaults when no path is given.

    ``data_root`` overrides whatever the file (or the environment) specifies.
    """

    payload: Mapping[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"listlens configuration not found at {config_path}")
        payload = _load_mapping(config_path)

    paths_block = payload.get("paths") or {}
    catalog_block = payload.get("catalog") or {}
    resources_block = payload.get("resources") or {}

    if data_root is not None:
        root = Path(data_root).expanduser()
    elif paths_block.get("data_root"):
        root = Path(str(paths_block["data_root"])).expanduser()
    else:
        root = get_data_root()

    paths = PathsConfig(
        data_root=root,
        list_file=str(paths_block.get("list_file", PathsConfig.list_file)),
        meta_file=str(paths_block.get("meta_file", PathsConfig.meta_file)),
        meta_template_file=str(paths_block.get("meta_template_file", PathsConfig.meta_template_file)),
        resource_dir=str(paths_block.get("resource_dir", PathsConfig.resource_dir)),
    )
    catalog = CatalogConfig(
        token_url=str(catalog_block.get("token_url", CatalogConfig.token_url)),
        games_url=str(catalog_block.get("games_url", CatalogConfig.games_url)),
        timeout_seconds=float(catalog_block.get("timeout_seconds", CatalogConfig.timeout_seconds)),
        rate_limit_cooldown_seconds=float(
            catalog_block.get("rate_limit_cooldown_seconds", CatalogConfig.rate_limit_cooldown_seconds)
        ),
        batch_size=int(catalog_block.get("batch_size", CatalogConfig.batch_size)),
        client_id_env=str(catalog_block.get("client_id_env", CatalogConfig.client_id_env)),
        client_secret_env=str(catalog_block.get("client_secret_env", CatalogConfig.client_secret_env)),
    )
    if catalog.batch_size < 1:
        raise ValueError("catalog.batch_size must be positive")
    resources = ResourceConfig(
        max_connections=int(resources_block.get("max_connections", ResourceConfig.max_connections)),
        timeout_seconds=float(resources_block.get("timeout_seconds", ResourceConfig.timeout_seconds)),
    )
    if resources.max_connections < 1:
        raise ValueError("resources.max_connections must be positive")
    return ListlensConfig(paths=paths, catalog=catalog, resources=resources)


def resolve_credentials(
    config: ListlensConfig,
    environ: Mapping[str, str] | None = None,
) -> tuple[str, str]:
    """Return ``(client_id, client_secret)`` from the environment."""

    env = os.environ if environ is None else environ
    client_id = env.get(config.catalog.client_id_env)
    client_secret = env.get(config.catalog.client_secret_env)
    missing = [
        name
        for name, value in (
            (config.catalog.client_id_env, client_id),
            (config.catalog.client_secret_env, client_secret),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError(f"Missing catalog credentials: {', '.join(missing)} must be set")
    return str(client_id), str(client_secret)


__all__ = [
    "CatalogConfig",
    "ConfigurationError",
    "ListlensConfig",
    "PathsConfig",
    "ResourceConfig",
    "load_config",
    "resolve_credentials",
]

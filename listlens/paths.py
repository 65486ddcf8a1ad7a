"""Shared helpers for resolving the runtime data files."""

from __future__ import annotations

import os
from pathlib import Path


LIST_FILENAME = "list.json"
META_FILENAME = "meta.json"
META_TEMPLATE_FILENAME = "meta_template.json"
RESOURCE_DIRNAME = "res"


def get_data_root() -> Path:
    """Resolve the runtime data root honoring the LISTLENS_DATA_ROOT override.

    Without an override the current working directory is used, which is where
    the list and metadata files live for a normal run.
    """

    override = os.environ.get("LISTLENS_DATA_ROOT")
    if override:
        return Path(override).expanduser()
    return Path.cwd()


def resource_root(*segments: str, root: Path | None = None) -> Path:
    """Base directory for downloaded image resources."""

    base = (root or get_data_root()) / RESOURCE_DIRNAME
    return base.joinpath(*segments) if segments else base


__all__ = [
    "LIST_FILENAME",
    "META_FILENAME",
    "META_TEMPLATE_FILENAME",
    "RESOURCE_DIRNAME",
    "get_data_root",
    "resource_root",
]

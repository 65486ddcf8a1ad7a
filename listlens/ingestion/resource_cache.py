"""On-disk cache for catalog images with bounded download concurrency."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

import httpx

from listlens.paths import resource_root

LOGGER = logging.getLogger(__name__)

MAX_CONNECTIONS = 8
THUMBNAIL_SEGMENT = "t_thumb"
IGDB_IMAGE_EXTENSION = "png"


class ResourceFetchError(RuntimeError):
    """Raised when an image download fails; nothing is cached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ImageSize(Enum):
    """IGDB image size tokens substituted for the thumbnail placeholder."""

    COVER_SMALL = "t_cover_small"
    COVER_BIG = "t_cover_big"
    SCREENSHOT_MED = "t_screenshot_med"
    SCREENSHOT_BIG = "t_screenshot_big"
    SCREENSHOT_HUGE = "t_screenshot_huge"
    LOGO_MED = "t_logo_med"
    THUMB = "t_thumb"
    MICRO = "t_micro"
    HD = "t_720p"
    FULL_HD = "t_1080p"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ResolvedResource:
    """Download URL and cache location for one (size, url) pair."""

    url: str
    path: Path
    rewritten: bool


class ResourceCache:
    """Resolves image URLs to bytes, downloading each distinct file at most once.

    Safe to share between concurrent tasks: the semaphore is the only mutable
    shared state, and concurrent writers of one path write identical bytes.
    """

    def __init__(
        self,
        root: Path | str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        max_connections: int = MAX_CONNECTIONS,
        timeout: float = 30.0,
    ) -> None:
        if max_connections < 1:
            raise ValueError("max_connections must be positive")
        self.root = Path(root) if root is not None else resource_root()
        self.max_connections = max_connections
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._semaphore = asyncio.Semaphore(max_connections)

    def resolve(self, size: ImageSize, url: str) -> ResolvedResource:
        """Rewrite *url* for *size* and derive its cache path.

        IGDB links point at the ``t_thumb`` variant and advertise ``.jpg``; the
        placeholder is replaced with the requested size and the extension is
        forced to ``.png``.  Other links are fetched as-is.
        """

        parts = url.split("/")
        filename = parts[-1]
        if not filename:
            raise ValueError(f"Resource URL has no filename: {url!r}")
        rewritten = len(parts) >= 2 and parts[-2] == THUMBNAIL_SEGMENT
        if rewritten:
            stem, dot, _ = filename.rpartition(".")
            filename = f"{stem if dot else filename}.{IGDB_IMAGE_EXTENSION}"
            parts[-1] = filename
            parts[-2] = size.value
            path = self.root / size.value / filename
        else:
            path = self.root / filename
        return ResolvedResource(url=_absolute_url("/".join(parts)), path=path, rewritten=rewritten)

    async def get(self, size: ImageSize, url: str) -> bytes:
        """Return the image bytes, from disk when cached."""

        resolved = self.resolve(size, url)
        LOGGER.info("Obtaining file %s", resolved.path)
        if await asyncio.to_thread(resolved.path.exists):
            return await asyncio.to_thread(resolved.path.read_bytes)

        async with self._semaphore:
            LOGGER.info("Downloading file at %s", resolved.url)
            try:
                response = await self._client.get(resolved.url)
            except httpx.HTTPError as exc:
                raise ResourceFetchError(f"Failed to download {resolved.url}: {exc}") from exc
        if not response.is_success:
            raise ResourceFetchError(
                f"Downloading {resolved.url} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        content = response.content
        LOGGER.info("Downloaded file at %s", resolved.url)
        await asyncio.to_thread(_write_bytes, resolved.path, content)
        return content

    async def get_many(self, requests: Iterable[tuple[ImageSize, str]]) -> list[bytes]:
        """Fetch several images concurrently; the first failure cancels the rest."""

        tasks = [asyncio.create_task(self.get(size, url)) for size, url in requests]
        if not tasks:
            return []
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ResourceCache":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def _absolute_url(url: str) -> str:
    if url.startswith("//"):
        return f"https:{url}"
    if url.startswith("http://") or url.startswith("https://"):
        return url
    raise ValueError(f"Resource URL must be absolute or protocol-relative: {url!r}")


def _write_bytes(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


__all__ = [
    "IGDB_IMAGE_EXTENSION",
    "ImageSize",
    "MAX_CONNECTIONS",
    "ResolvedResource",
    "ResourceCache",
    "ResourceFetchError",
    "THUMBNAIL_SEGMENT",
]

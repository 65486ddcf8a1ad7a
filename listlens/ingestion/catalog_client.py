"""IGDB catalog client: client-credentials login and batched game lookups."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Mapping, Sequence

import httpx

from listlens.models import ItemId, MetadataFormatError, MetadataRecord

LOGGER = logging.getLogger(__name__)

GAME_FIELDS: tuple[str, ...] = (
    "age_ratings.category",
    "age_ratings.rating",
    "age_ratings.rating_cover_url",
    "aggregated_rating",
    "aggregated_rating_count",
    "cover.url",
    "first_release_date",
    "franchise.name",
    "game_engines.name",
    "game_engines.logo.url",
    "game_modes.name",
    "genres.name",
    "involved_companies.developer",
    "involved_companies.porting",
    "involved_companies.publisher",
    "involved_companies.supporting",
    "involved_companies.company.country",
    "involved_companies.company.logo.url",
    "involved_companies.company.name",
    "involved_companies.company.start_date",
    "keywords.name",
    "multiplayer_modes.campaigncoop",
    "multiplayer_modes.lancoop",
    "multiplayer_modes.offlinecoop",
    "multiplayer_modes.onlinecoop",
    "name",
    "platforms.category",
    "platforms.name",
    "platforms.generation",
    "platforms.platform_logo.url",
    "player_perspectives.name",
    "release_dates.date",
    "themes.name",
    "rating",
    "rating_count",
    "total_rating",
    "total_rating_count",
)

MAX_BATCH_SIZE = 500


class CatalogClientError(RuntimeError):
    """Base error for catalog client failures."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CatalogAuthenticationError(CatalogClientError):
    """Raised when the token exchange fails or returns no token."""


class CatalogRateLimitError(CatalogClientError):
    """Raised when the API still responds with 429 after the cooldown retry."""


def build_games_query(ids: Sequence[ItemId]) -> str:
    """Apicalypse body selecting the full field projection for *ids*."""

    joined = ",".join(str(item_id) for item_id in ids)
    return f"fields {','.join(GAME_FIELDS)}; where id=({joined}); limit {len(ids)};"


class CatalogClient:
    """httpx-backed IGDB client.

    The access token is requested lazily on the first lookup and kept in
    memory for the lifetime of the instance.  A 429 response is retried once
    after ``rate_limit_cooldown`` seconds; every other failure is raised.
    """

    TOKEN_URL = "https://id.twitch.tv/oauth2/token"
    GAMES_URL = "https://api.igdb.com/v4/games"
    DEFAULT_COOLDOWN = 60.0

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        rate_limit_cooldown: float | None = None,
        token_url: str | None = None,
        games_url: str | None = None,
    ) -> None:
        if not client_id or not client_secret:
            raise CatalogAuthenticationError("client_id and client_secret are required")
        self.client_id = client_id
        self.client_secret = client_secret
        self.rate_limit_cooldown = (
            rate_limit_cooldown if rate_limit_cooldown is not None else self.DEFAULT_COOLDOWN
        )
        self.token_url = token_url or self.TOKEN_URL
        self.games_url = games_url or self.GAMES_URL
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._access_token: str | None = None
        self._token_lock = asyncio.Lock()

    @property
    def access_token(self) -> str | None:
        return self._access_token

    async def authenticate(self) -> str:
        """Exchange the client credentials for a bearer token, once per instance."""

        async with self._token_lock:
            if self._access_token is not None:
                return self._access_token
            LOGGER.info("Logging in to IGDB API")
            request = self._client.build_request(
                "POST",
                self.token_url,
                params={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
            )
            try:
                response = await self._send(request)
            except CatalogRateLimitError:
                raise
            except CatalogClientError as exc:
                raise CatalogAuthenticationError(
                    f"IGDB login failed: {exc}", status_code=exc.status_code
                ) from exc
            payload = _json(response)
            token = payload.get("access_token") if isinstance(payload, Mapping) else None
            if not token:
                raise CatalogAuthenticationError("IGDB login response did not include an access_token")
            self._access_token = str(token)
            LOGGER.info("Logged in to IGDB API")
            return self._access_token

    async def fetch_batch(self, ids: Sequence[ItemId]) -> list[MetadataRecord]:
        """Fetch metadata for *ids* in a single request.

        Callers keep batches within ``MAX_BATCH_SIZE``; see ``fetch_missing``.
        """

        if not ids:
            return []
        non_catalog = [item_id for item_id in ids if not item_id.is_catalog]
        if non_catalog:
            raise ValueError(f"Only catalog ids can be fetched, got {', '.join(map(repr, non_catalog))}")

        token = self._access_token or await self.authenticate()
        LOGGER.info("Fetching %d games from IGDB", len(ids))
        request = self._client.build_request(
            "POST",
            self.games_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Client-ID": self.client_id,
                "Accept": "application/json",
            },
            content=build_games_query(ids).encode("utf-8"),
        )
        response = await self._send(request)
        payload = _json(response)
        if not isinstance(payload, list):
            raise CatalogClientError("IGDB games endpoint returned a non-list payload")
        try:
            records = [MetadataRecord.from_dict(entry) for entry in payload]
        except MetadataFormatError as exc:
            raise CatalogClientError(f"IGDB returned malformed game metadata: {exc}") from exc
        LOGGER.info("Fetched %d games from IGDB", len(records))
        return records

    async def fetch_missing(
        self,
        ids: Iterable[ItemId],
        *,
        batch_size: int = MAX_BATCH_SIZE,
    ) -> list[MetadataRecord]:
        """Fetch any number of ids, split into provider-sized sequential batches."""

        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        ordered = sorted(set(ids), key=ItemId.sort_key)
        records: list[MetadataRecord] = []
        for start in range(0, len(ordered), batch_size):
            records.extend(await self.fetch_batch(ordered[start : start + batch_size]))
        return records

    async def _send(self, request: httpx.Request) -> httpx.Response:
        response = await self._transmit(request)
        if response.is_success:
            return response
        if response.status_code != 429:
            raise _status_error(request, response)

        LOGGER.warning("Reached IGDB API rate limit. Sleeping %.0f seconds.", self.rate_limit_cooldown)
        await asyncio.sleep(self.rate_limit_cooldown)
        response = await self._transmit(request)
        if response.is_success:
            return response
        if response.status_code == 429:
            raise CatalogRateLimitError("IGDB API rate limit exceeded after retry", status_code=429)
        raise _status_error(request, response)

    async def _transmit(self, request: httpx.Request) -> httpx.Response:
        try:
            return await self._client.send(request)
        except httpx.HTTPError as exc:
            raise CatalogClientError(f"{request.method} {_redacted(request.url)} failed: {exc}") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def _status_error(request: httpx.Request, response: httpx.Response) -> CatalogClientError:
    return CatalogClientError(
        f"{request.method} {_redacted(request.url)} responded with HTTP {response.status_code}",
        status_code=response.status_code,
    )


def _redacted(url: httpx.URL) -> str:
    # the token endpoint carries the client secret in its query string
    return f"{url.scheme}://{url.host}{url.path}"


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise CatalogClientError(f"Invalid JSON from {_redacted(response.request.url)}") from exc


__all__ = [
    "CatalogAuthenticationError",
    "CatalogClient",
    "CatalogClientError",
    "CatalogRateLimitError",
    "GAME_FIELDS",
    "MAX_BATCH_SIZE",
    "build_games_query",
]

"""Network-facing clients: the IGDB catalog and the image cache."""

from .catalog_client import (
    CatalogAuthenticationError,
    CatalogClient,
    CatalogClientError,
    CatalogRateLimitError,
)
from .resource_cache import ImageSize, ResourceCache, ResourceFetchError

__all__ = [
    "CatalogAuthenticationError",
    "CatalogClient",
    "CatalogClientError",
    "CatalogRateLimitError",
    "ImageSize",
    "ResourceCache",
    "ResourceFetchError",
]

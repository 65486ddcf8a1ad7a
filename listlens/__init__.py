"""Ranked-list history enrichment with IGDB metadata and derived analytics."""

from listlens.analytics import ListAnalytics, RankingMismatchError
from listlens.config import ConfigurationError, ListlensConfig, load_config
from listlens.models import ItemId, MetadataRecord, RatingKind
from listlens.pipeline import ListDataset, load_dataset

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "ItemId",
    "ListAnalytics",
    "ListDataset",
    "ListlensConfig",
    "MetadataRecord",
    "RankingMismatchError",
    "RatingKind",
    "load_config",
    "load_dataset",
]

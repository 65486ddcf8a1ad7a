"""Read-only analytics over the list history and metadata store."""

from .engine import ListAnalytics, RankingMismatchError

__all__ = ["ListAnalytics", "RankingMismatchError"]

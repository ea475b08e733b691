"""Database module for the local SQLite catalog."""

from .models import Book, BookRecommendation, WorkCluster, WorkClusterMember
from .schemas import BookRecord, BookSource, RecommendationRecord
from .sqlite import Database, get_db, reset_db

__all__ = [
    "Book",
    "BookRecommendation",
    "WorkCluster",
    "WorkClusterMember",
    "BookRecord",
    "BookSource",
    "RecommendationRecord",
    "Database",
    "get_db",
    "reset_db",
]

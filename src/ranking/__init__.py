"""Rank engine and the models it exchanges with callers."""

from .engine import TEMP_OFFSET, IntegrityReport, RankEngine, open_engine
from .models import Favorite, FavoriteCreate, FavoriteUpdate, ListOrder

__all__ = [
    "TEMP_OFFSET",
    "IntegrityReport",
    "RankEngine",
    "open_engine",
    "Favorite",
    "FavoriteCreate",
    "FavoriteUpdate",
    "ListOrder",
]

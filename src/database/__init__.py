"""Database models and repository."""

from .models import Base, FavoriteRecord
from .repository import RankTransaction, Repository

__all__ = ["Base", "FavoriteRecord", "RankTransaction", "Repository"]

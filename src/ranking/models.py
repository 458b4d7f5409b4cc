"""Pydantic models for favorites passed in and out of the rank engine."""

from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ListOrder(str, Enum):
    """Orderings offered by the engine."""

    RANK = "rank"
    RECENT = "recent"


def _non_empty(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


class Favorite(BaseModel):
    """Snapshot of a stored favorite."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    rank: int
    title: str
    artist: str
    year: int | None = None
    last_played: date | None = None


class FavoriteCreate(BaseModel):
    """Fields for a new favorite."""

    rank: int = Field(ge=1)
    title: str
    artist: str
    year: int | None = None
    last_played: date | None = None

    @field_validator("title", "artist")
    @classmethod
    def validate_text(cls, v: str) -> str:
        return _non_empty(v)

    def columns(self) -> dict[str, Any]:
        """Column values as stored (dates as ISO text)."""
        return {
            "rank": self.rank,
            "title": self.title,
            "artist": self.artist,
            "year": self.year,
            "last_played": self.last_played.isoformat() if self.last_played else None,
        }


class FavoriteUpdate(BaseModel):
    """Partial update; only fields explicitly set are applied.

    Setting ``year`` or ``last_played`` to None clears them.
    """

    rank: int | None = Field(None, ge=1)
    title: str | None = None
    artist: str | None = None
    year: int | None = None
    last_played: date | None = None

    @field_validator("title", "artist")
    @classmethod
    def validate_text(cls, v: str | None) -> str | None:
        return None if v is None else _non_empty(v)

    @model_validator(mode="after")
    def reject_null_required(self) -> "FavoriteUpdate":
        for name in ("rank", "title", "artist"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def columns(self) -> dict[str, Any]:
        """Explicitly set column values as stored (dates as ISO text)."""
        changes = self.model_dump(exclude_unset=True)
        if "last_played" in changes and changes["last_played"] is not None:
            changes["last_played"] = changes["last_played"].isoformat()
        return changes

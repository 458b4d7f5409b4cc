"""SQLAlchemy database models for the favorites ranking."""

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class FavoriteRecord(Base):
    """One ranked favorite.

    ``rank`` carries a UNIQUE constraint which SQLite checks after every
    row write, including rows touched by a multi-row UPDATE.
    """

    __tablename__ = "favorites"
    __table_args__ = (
        Index("idx_favorites_last_played", "last_played"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rank: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    artist: Mapped[str] = mapped_column(Text, nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # ISO date text (YYYY-MM-DD), sorts chronologically as a string
    last_played: Mapped[str | None] = mapped_column(String(10), nullable=True)

    def __repr__(self) -> str:
        return f"<FavoriteRecord id={self.id} rank={self.rank} title={self.title!r}>"

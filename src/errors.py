"""Exceptions shared by the rank store, the rank engine and their clients."""


class RankingError(Exception):
    """Base exception for favorites ranking errors."""

    pass


class ConstraintViolation(RankingError):
    """A write would have given two live records the same rank."""

    pass


class NotFoundError(RankingError):
    """No favorite exists with the requested id."""

    def __init__(self, favorite_id: int) -> None:
        super().__init__(f"Favorite {favorite_id} not found")
        self.favorite_id = favorite_id


class InvalidInputError(RankingError, ValueError):
    """Rejected request, e.g. a rank outside the allowed window."""

    pass

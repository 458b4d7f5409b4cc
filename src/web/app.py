"""FastAPI JSON API over the rank engine."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.errors import ConstraintViolation, InvalidInputError, NotFoundError
from src.ranking import (
    Favorite,
    FavoriteCreate,
    FavoriteUpdate,
    ListOrder,
    RankEngine,
    open_engine,
)
from src.utils.config import Settings, load_config
from src.utils.logging import get_logger

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    config_path: str = "config.yaml",
) -> FastAPI:
    """Create the FastAPI application.

    The store and engine are opened once in the app lifespan and shared by
    every request.

    Args:
        settings: Settings to use; loaded from ``config_path`` when omitted
        config_path: Path to configuration file

    Returns:
        Configured FastAPI app
    """
    settings = settings or load_config(config_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with open_engine(settings) as engine:
            app.state.engine = engine
            logger.info("api_started", database=settings.database.path)
            yield
        logger.info("api_stopped")

    app = FastAPI(
        title="Ranked Favorites",
        description="Ordered favorites list with dense ranks",
        version="1.0.0",
        lifespan=lifespan,
    )

    def engine_of(request: Request) -> RankEngine:
        return request.app.state.engine

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"status": "error", "message": str(exc)},
        )

    @app.exception_handler(InvalidInputError)
    async def invalid_input(request: Request, exc: InvalidInputError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": "error", "message": str(exc)},
        )

    @app.exception_handler(ConstraintViolation)
    async def constraint_violation(request: Request, exc: ConstraintViolation) -> JSONResponse:
        logger.error("request_failed", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "message": "Rank update failed, nothing was changed"},
        )

    @app.get("/api/favorites")
    async def list_favorites(request: Request, sort: ListOrder = ListOrder.RANK) -> list[Favorite]:
        """All favorites, by rank or most recently played."""
        return await engine_of(request).list(sort)

    @app.get("/api/favorites/max-rank")
    async def max_rank(request: Request) -> dict[str, int]:
        """Highest rank in use; new favorites default to one past it."""
        return {"max_rank": await engine_of(request).get_max_rank()}

    @app.get("/api/favorites/{favorite_id}")
    async def get_favorite(request: Request, favorite_id: int) -> Favorite:
        return await engine_of(request).get(favorite_id)

    @app.post("/api/favorites", status_code=status.HTTP_201_CREATED)
    async def create_favorite(request: Request, body: FavoriteCreate) -> Favorite:
        return await engine_of(request).insert(body)

    @app.put("/api/favorites/{favorite_id}")
    async def update_favorite(request: Request, favorite_id: int, body: FavoriteUpdate) -> Favorite:
        return await engine_of(request).update(favorite_id, body)

    @app.delete("/api/favorites/{favorite_id}")
    async def delete_favorite(request: Request, favorite_id: int) -> dict[str, str]:
        await engine_of(request).delete(favorite_id)
        return {"status": "success"}

    @app.post("/api/favorites/{favorite_id}/played")
    async def mark_played(request: Request, favorite_id: int) -> Favorite:
        return await engine_of(request).mark_played(favorite_id)

    @app.get("/api/status")
    async def api_status(request: Request) -> dict[str, Any]:
        """Size of the list and whether its ranks are intact."""
        engine = engine_of(request)
        report = await engine.check_integrity()
        return {
            "count": report.count,
            "max_rank": await engine.get_max_rank(),
            "integrity": {
                "ok": report.ok,
                "missing_ranks": report.missing_ranks,
                "unexpected_ranks": report.unexpected_ranks,
            },
        }

    return app


def run_server(settings: Settings) -> None:
    """Run the web server on the configured host and port."""
    import uvicorn

    app = create_app(settings)
    uvicorn.run(app, host=settings.web.host, port=settings.web.port)

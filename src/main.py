"""CLI entry point for Ranked Favorites."""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Optional, TypeVar

import typer
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from src.errors import ConstraintViolation, InvalidInputError, NotFoundError
from src.ranking import Favorite, FavoriteCreate, FavoriteUpdate, ListOrder, RankEngine, open_engine
from src.utils.config import Settings, load_config
from src.utils.logging import setup_logging

T = TypeVar("T")

app = typer.Typer(
    name="favorites",
    help="Ranked Favorites - keep an ordered list of favorite albums",
    no_args_is_help=True,
)
console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to configuration file"),
]


def get_settings(config: Optional[Path]) -> Settings:
    """Load settings and set up console logging for a CLI command."""
    settings = load_config(config or Path("config.yaml"))
    setup_logging(
        log_level=settings.logging.level,
        log_file=settings.logging.file_path,
        json_format=False,
    )
    return settings


def run_with_engine(settings: Settings, action: Callable[[RankEngine], Awaitable[T]]) -> T:
    """Open the store, run ``action`` against the engine and report failures."""

    async def runner() -> T:
        async with open_engine(settings) as engine:
            return await action(engine)

    try:
        return asyncio.run(runner())
    except NotFoundError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except InvalidInputError as e:
        rprint(f"[red]Invalid input:[/red] {e}")
        raise typer.Exit(1)
    except ConstraintViolation as e:
        rprint(f"[red]Rank update failed, nothing was changed:[/red] {e}")
        raise typer.Exit(2)


def parse_input(model: type[T], **fields) -> T:
    """Build an input model, turning validation errors into a CLI error."""
    try:
        return model(**fields)
    except ValidationError as e:
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"]) or "input"
            rprint(f"[red]Invalid {location}:[/red] {error['msg']}")
        raise typer.Exit(1)


def render_favorites(favorites: list[Favorite], title: str) -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right", style="bold")
    table.add_column("Title", style="cyan")
    table.add_column("Artist")
    table.add_column("Year", justify="right")
    table.add_column("Last played")
    table.add_column("ID", justify="right", style="dim")
    for fav in favorites:
        table.add_row(
            str(fav.rank),
            fav.title,
            fav.artist,
            str(fav.year) if fav.year is not None else "",
            fav.last_played.isoformat() if fav.last_played else "never",
            str(fav.id),
        )
    return table


def describe(fav: Favorite) -> str:
    return f"#{fav.rank} [cyan]{fav.title}[/cyan] by {fav.artist}"


@app.command()
def init(config: ConfigOption = None) -> None:
    """Create the database if it does not exist yet."""
    settings = get_settings(config)

    async def action(engine: RankEngine) -> int:
        return await engine.repository.count()

    count = run_with_engine(settings, action)
    rprint(f"[green]✓[/green] Database ready at [cyan]{settings.database.path}[/cyan]")
    rprint(f"  {count} favorites")


@app.command("list")
def list_favorites(
    recent: Annotated[
        bool,
        typer.Option("--recent", "-r", help="Order by most recently played"),
    ] = False,
    config: ConfigOption = None,
) -> None:
    """Show all favorites."""
    settings = get_settings(config)
    order = ListOrder.RECENT if recent else ListOrder.RANK
    favorites = run_with_engine(settings, lambda engine: engine.list(order))

    if not favorites:
        rprint("[yellow]No favorites yet.[/yellow] Add one with [cyan]favorites add[/cyan]")
        return
    console.print(render_favorites(favorites, "Recently Played" if recent else "Favorites"))


@app.command()
def add(
    title: Annotated[str, typer.Argument(help="Album or song title")],
    artist: Annotated[str, typer.Argument(help="Artist name")],
    rank: Annotated[
        Optional[int],
        typer.Option("--rank", "-r", help="Position to insert at (default: end of list)"),
    ] = None,
    year: Annotated[Optional[int], typer.Option("--year", "-y", help="Release year")] = None,
    last_played: Annotated[
        Optional[str],
        typer.Option("--last-played", help="Date last played (YYYY-MM-DD)"),
    ] = None,
    config: ConfigOption = None,
) -> None:
    """Add a favorite, shifting later ones down."""
    settings = get_settings(config)

    async def action(engine: RankEngine) -> Favorite:
        position = rank if rank is not None else await engine.get_max_rank() + 1
        data = parse_input(
            FavoriteCreate,
            rank=position,
            title=title,
            artist=artist,
            year=year,
            last_played=last_played,
        )
        return await engine.insert(data)

    fav = run_with_engine(settings, action)
    rprint(f"[green]✓[/green] Added {describe(fav)}")


@app.command()
def edit(
    favorite_id: Annotated[int, typer.Argument(help="Favorite ID")],
    title: Annotated[Optional[str], typer.Option("--title", "-t")] = None,
    artist: Annotated[Optional[str], typer.Option("--artist", "-a")] = None,
    year: Annotated[Optional[int], typer.Option("--year", "-y")] = None,
    rank: Annotated[Optional[int], typer.Option("--rank", "-r", help="Move to this rank")] = None,
    last_played: Annotated[
        Optional[str],
        typer.Option("--last-played", help="Date last played (YYYY-MM-DD)"),
    ] = None,
    clear_year: Annotated[bool, typer.Option("--clear-year", help="Remove the year")] = False,
    clear_played: Annotated[
        bool,
        typer.Option("--clear-played", help="Mark as never played"),
    ] = False,
    config: ConfigOption = None,
) -> None:
    """Edit fields of a favorite, optionally moving it."""
    fields = {
        name: value
        for name, value in (
            ("title", title),
            ("artist", artist),
            ("year", year),
            ("rank", rank),
            ("last_played", last_played),
        )
        if value is not None
    }
    if clear_year:
        fields["year"] = None
    if clear_played:
        fields["last_played"] = None
    if not fields:
        rprint("[red]Error:[/red] Nothing to change")
        raise typer.Exit(1)

    data = parse_input(FavoriteUpdate, **fields)
    settings = get_settings(config)
    fav = run_with_engine(settings, lambda engine: engine.update(favorite_id, data))
    rprint(f"[green]✓[/green] Updated {describe(fav)}")


@app.command()
def move(
    favorite_id: Annotated[int, typer.Argument(help="Favorite ID")],
    rank: Annotated[int, typer.Argument(help="New rank")],
    config: ConfigOption = None,
) -> None:
    """Move a favorite to a new rank."""
    settings = get_settings(config)
    fav = run_with_engine(settings, lambda engine: engine.move(favorite_id, rank))
    rprint(f"[green]✓[/green] Moved to {describe(fav)}")


@app.command()
def remove(
    favorite_id: Annotated[int, typer.Argument(help="Favorite ID")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
    config: ConfigOption = None,
) -> None:
    """Remove a favorite and close the gap in the ranking."""
    settings = get_settings(config)

    if not yes:
        fav = run_with_engine(settings, lambda engine: engine.get(favorite_id))
        if not typer.confirm(f"Remove #{fav.rank} {fav.title} by {fav.artist}?"):
            return

    fav = run_with_engine(settings, lambda engine: engine.delete(favorite_id))
    rprint(f"[green]✓[/green] Removed [cyan]{fav.title}[/cyan] (was #{fav.rank})")


@app.command()
def played(
    favorite_id: Annotated[int, typer.Argument(help="Favorite ID")],
    config: ConfigOption = None,
) -> None:
    """Mark a favorite as played today."""
    settings = get_settings(config)
    fav = run_with_engine(settings, lambda engine: engine.mark_played(favorite_id))
    rprint(f"[green]✓[/green] {describe(fav)} played on {fav.last_played}")


@app.command()
def check(config: ConfigOption = None) -> None:
    """Verify that ranks run from 1 to N without gaps."""
    settings = get_settings(config)
    report = run_with_engine(settings, lambda engine: engine.check_integrity())

    if report.ok:
        rprint(f"[green]✓[/green] {report.count} favorites, ranks 1..{report.count} intact")
        return

    rprint(f"[red]✗[/red] Ranks are not contiguous ({report.count} favorites)")
    if report.missing_ranks:
        rprint(f"  Missing: {', '.join(map(str, report.missing_ranks))}")
    if report.unexpected_ranks:
        rprint(f"  Unexpected: {', '.join(map(str, report.unexpected_ranks))}")
    rprint("Run [cyan]favorites normalize[/cyan] to renumber them")
    raise typer.Exit(1)


@app.command()
def normalize(config: ConfigOption = None) -> None:
    """Renumber favorites 1..N, keeping their order."""
    settings = get_settings(config)
    changed = run_with_engine(settings, lambda engine: engine.normalize())
    rprint(f"[green]✓[/green] Renumbered {changed} favorites")


@app.command()
def serve(
    host: Annotated[Optional[str], typer.Option("--host", help="Host to bind to")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Port to listen on")] = None,
    config: ConfigOption = None,
) -> None:
    """Run the JSON API server."""
    settings = load_config(config or Path("config.yaml"))
    setup_logging(
        log_level=settings.logging.level,
        log_file=settings.logging.file_path,
        json_format=settings.logging.json_format,
    )
    if host:
        settings.web.host = host
    if port:
        settings.web.port = port

    from src.web.app import run_server

    rprint(f"\n[bold blue]Serving favorites on http://{settings.web.host}:{settings.web.port}[/bold blue]\n")
    run_server(settings)


if __name__ == "__main__":
    app()

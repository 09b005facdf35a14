"""CLI entry point for vsrkit."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from vsrkit import __version__
from vsrkit.config import get_settings, load_settings
from vsrkit.errors import ConfigurationError, VsrKitError, VsrNotFoundError
from vsrkit.utils.logging import setup_logging
from vsrkit.vsr import (
    Change,
    OutputChannel,
    Repository,
    Vsr,
    find_repository_root,
    find_vsr,
    forward_to_logger,
)

app = typer.Typer(
    name="vsrkit",
    help="Inspect Versionr working copies through the vsr command line tool",
    add_completion=True,
    no_args_is_help=True,
)

console = Console()

_STATE: dict[str, Any] = {"verbose": False}

_STATUS_STYLES = {
    "M": "yellow",
    "A": "green",
    "D": "red",
    "R": "blue",
    "C": "blue",
    "?": "magenta",
    "!": "dim",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]vsrkit[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output and echo vsr invocations",
    ),
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """vsrkit - Versionr command line helper."""
    try:
        if config:
            load_settings(config_path=config, force_reload=True)
        settings = get_settings()
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    setup_logging(
        level=getattr(logging, settings.logging.level),
        log_file=settings.logging.resolved_file,
        verbose=verbose,
    )
    _STATE["verbose"] = verbose


async def create_vsr() -> Vsr:
    """Locate vsr and build a runner from the current settings."""
    settings = get_settings()
    info = await find_vsr(settings.path)

    output = OutputChannel(history=settings.runner.log_history)
    if _STATE["verbose"]:
        output.subscribe(forward_to_logger())

    return Vsr.from_info(
        info,
        env=settings.runner.env,
        output=output,
        max_cli_length=settings.runner.max_cli_length,
        clean_concurrency=settings.runner.clean_concurrency,
        status_limit=settings.runner.status_limit,
    )


async def open_repository(path: Path) -> Repository:
    """Open the working copy containing path.

    Raises:
        typer.Exit: If path is not inside a working copy.
    """
    root = find_repository_root(path)
    if root is None:
        console.print(f"[red]Not a vsr working copy: {escape(str(path))}[/red]")
        raise typer.Exit(1)

    vsr = await create_vsr()
    return vsr.open(root)


def _run(factory: Callable[[], Awaitable[None]]) -> None:
    """Run a command coroutine, reporting vsrkit errors."""
    try:
        asyncio.run(factory())
    except VsrNotFoundError as e:
        console.print(
            Panel(
                f"[yellow]{escape(e.message)}[/yellow]\n\n"
                "Install Versionr or set the binary path:\n"
                "  • VSRKIT_PATH environment variable\n"
                "  • path: in ~/.vsrkit/config.yaml",
                title="Vsr Not Found",
                border_style="yellow",
            )
        )
        raise typer.Exit(1)
    except VsrKitError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        if _STATE["verbose"] and hasattr(e, "describe"):
            console.print(e.describe(), markup=False)
        raise typer.Exit(1)


PathOption = typer.Option(Path("."), "--path", "-p", help="Working copy path")


@app.command()
def find(
    hint: Optional[str] = typer.Argument(None, help="Binary to try before the usual locations"),
) -> None:
    """Locate the vsr binary and show its version."""

    async def _find() -> None:
        settings = get_settings()
        info = await find_vsr(hint or settings.path)
        console.print(f"[green]Found vsr[/green] {info.version} at [cyan]{info.path}[/cyan]")

    _run(_find)


@app.command()
def status(
    path: Path = PathOption,
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Maximum number of entries"),
) -> None:
    """Show working copy status."""

    async def _status() -> None:
        repo = await open_repository(path)
        try:
            result = await repo.get_status(limit)
        finally:
            repo.vsr.dispose()

        if not result.status:
            console.print("[dim]Nothing to report, working copy clean.[/dim]")
            return

        table = Table(title=f"Status of {repo.root}")
        table.add_column("Index", justify="center", no_wrap=True)
        table.add_column("Work Tree", justify="center", no_wrap=True)
        table.add_column("Path", style="cyan")
        table.add_column("Renamed From", style="dim")

        for entry in result.status:
            table.add_row(
                _styled_code(entry.x),
                _styled_code(entry.y),
                escape(entry.path),
                escape(entry.renamed_from or ""),
            )

        console.print(table)

        if result.did_hit_limit:
            console.print(f"[yellow]Only the first {len(result.status)} entries are shown.[/yellow]")

    _run(_status)


@app.command()
def log(
    path: Path = PathOption,
    max_entries: int = typer.Option(32, "--max", "-n", help="Number of commits to show"),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Restrict history to a path"),
) -> None:
    """Show commit history."""

    async def _log() -> None:
        repo = await open_repository(path)
        try:
            commits = await repo.log(max_entries=max_entries, path=file)
        finally:
            repo.vsr.dispose()

        if not commits:
            console.print("[dim]No commits found.[/dim]")
            return

        table = Table(title="History")
        table.add_column("Hash", style="cyan", no_wrap=True)
        table.add_column("Author", style="green")
        table.add_column("Date", style="yellow")
        table.add_column("Message")

        for commit in commits:
            table.add_row(
                commit.short_hash,
                escape(commit.author_name or "-"),
                commit.author_date.strftime("%Y-%m-%d %H:%M") if commit.author_date else "-",
                escape(commit.message.split("\n", 1)[0]),
            )

        console.print(table)

    _run(_log)


@app.command()
def head(path: Path = PathOption) -> None:
    """Show the current branch and version."""

    async def _head() -> None:
        repo = await open_repository(path)
        try:
            branch = await repo.get_head()
            if branch.name:
                branch = await repo.get_branch(branch.name)
        finally:
            repo.vsr.dispose()

        console.print(f"[bold]Branch:[/bold]  {branch.name}")
        console.print(f"[bold]Version:[/bold] {branch.commit}")

        if branch.upstream:
            console.print(
                f"[bold]Remote:[/bold]  {branch.upstream.remote} "
                f"(ahead {branch.ahead or 0}, behind {branch.behind or 0})"
            )
        else:
            console.print("[dim]No remote connected.[/dim]")

    _run(_head)


@app.command()
def diff(
    path: Path = PathOption,
    file: Optional[str] = typer.Argument(None, help="Show the patch for one file"),
    cached: bool = typer.Option(False, "--cached", help="Compare the index instead of the working copy"),
) -> None:
    """Show changed files, or the patch of a single file."""

    async def _diff() -> None:
        repo = await open_repository(path)
        try:
            if cached:
                result = await repo.diff_index_with_head(file)
            else:
                result = await repo.diff_with_head(file)
        finally:
            repo.vsr.dispose()

        if isinstance(result, str):
            console.print(result, markup=False, highlight=False)
            return

        if not result:
            console.print("[dim]No changes.[/dim]")
            return

        table = Table(title="Changes")
        table.add_column("Status", no_wrap=True)
        table.add_column("Path", style="cyan")

        for change in result:
            table.add_row(change.status.name.capitalize(), escape(_change_path(change, repo.root)))

        console.print(table)

    _run(_diff)


@app.command()
def stashes(path: Path = PathOption) -> None:
    """List stashes."""

    async def _stashes() -> None:
        repo = await open_repository(path)
        try:
            stash_list = await repo.get_stashes()
        finally:
            repo.vsr.dispose()

        if not stash_list:
            console.print("[dim]No stashes found.[/dim]")
            return

        table = Table(title="Stashes")
        table.add_column("Index", style="cyan", justify="right")
        table.add_column("Description")

        for stash in stash_list:
            table.add_row(str(stash.index), escape(stash.description))

        console.print(table)

    _run(_stashes)


@app.command()
def remotes(path: Path = PathOption) -> None:
    """List configured remotes."""

    async def _remotes() -> None:
        repo = await open_repository(path)
        try:
            remote_list = await repo.get_remotes()
        finally:
            repo.vsr.dispose()

        if not remote_list:
            console.print("[dim]No remotes configured.[/dim]")
            return

        table = Table(title="Remotes")
        table.add_column("Name", style="cyan")
        table.add_column("URL", style="green")

        for remote in remote_list:
            table.add_row(escape(remote.name), escape(remote.push_url or remote.fetch_url or "-"))

        console.print(table)

    _run(_remotes)


@app.command()
def submodules(path: Path = PathOption) -> None:
    """List submodules declared in .gitmodules."""

    async def _submodules() -> None:
        repo = await open_repository(path)
        try:
            modules = await repo.get_submodules()
        finally:
            repo.vsr.dispose()

        if not modules:
            console.print("[dim]No submodules found.[/dim]")
            return

        table = Table(title="Submodules")
        table.add_column("Name", style="cyan")
        table.add_column("Path", style="blue")
        table.add_column("URL", style="green")

        for module in modules:
            table.add_row(escape(module.name), escape(module.path), escape(module.url))

        console.print(table)

    _run(_submodules)


def _styled_code(code: str) -> str:
    if not code:
        return ""
    style = _STATUS_STYLES.get(code, "white")
    return f"[{style}]{code}[/{style}]"


def _change_path(change: Change, root: Path) -> str:
    uri = Path(change.rename_uri or change.uri)
    try:
        return str(uri.relative_to(root))
    except ValueError:
        return str(uri)


if __name__ == "__main__":
    app()

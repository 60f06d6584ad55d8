"""vaultsync — command-line front end for an encrypted, synchronised record collection.

Commands
--------
  init      Create an empty encrypted collection
  add       Add a record
  get       Show one record (masked values hidden unless --show)
  list      List live records in a rich table
  update    Change name, fields or tags of a record
  remove    Tombstone a record so the removal syncs
  sync      Pull, commit and push against the configured remote
  passwd    Re-encrypt the collection under a new master password
  info      Show settings and collection statistics

The master password is read from ``VAULTSYNC_PASSWORD`` when set, otherwise
prompted for. Everything else comes from :class:`vaultsync.config.Settings`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from typing import Annotated, AsyncIterator, Optional

import typer
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from . import __version__
from .collection import Collection
from .config import Settings
from .crypto import PasswordCodec
from .errors import ErrorKind, VaultError
from .models import Record, RecordField
from .session import Session
from .sources import FileSource, HttpSource, Source, TimeoutSource
from .store import Store
from .sync import SyncCoordinator

# ---------------------------------------------------------------------------
# App & consoles
# ---------------------------------------------------------------------------

_THEME = Theme(
    {
        "success": "bold green",
        "warning": "bold yellow",
        "danger": "bold red",
        "muted": "dim",
        "label": "cyan",
        "highlight": "bold white",
    }
)

console = Console(theme=_THEME)
err = Console(stderr=True, theme=_THEME)

app = typer.Typer(
    name="vaultsync",
    help="[bold cyan]vaultsync[/bold cyan] — encrypted records, synced.",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
    rich_markup_mode="rich",
)

_ERROR_HINTS = {
    ErrorKind.AUTHENTICATION_FAILED: "Wrong master password.",
    ErrorKind.DATA_CORRUPTED: "Stored data is corrupted and cannot be read.",
    ErrorKind.SOURCE_UNAVAILABLE: "Storage is unavailable, try again later.",
    ErrorKind.NOT_FOUND: "No collection found. Run [bold]vaultsync init[/bold] first.",
}


@app.callback()
def _main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log storage and sync activity.")] = False,
) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=err, show_path=False)],
        )


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _settings() -> Settings:
    try:
        return Settings.from_env()
    except ValidationError as exc:
        err.print(f"[danger]Invalid configuration:[/danger]\n{escape(str(exc))}")
        raise typer.Exit(1) from exc


def _store(settings: Settings) -> Store:
    return Store(FileSource(settings.data_dir), PasswordCodec(settings.kdf_iterations))


@contextlib.asynccontextmanager
async def _open_remote(settings: Settings) -> AsyncIterator[Source]:
    if not settings.remote_url:
        err.print("[danger]No remote configured.[/danger] Set [bold]VAULTSYNC_REMOTE_URL[/bold].")
        raise typer.Exit(1)
    async with HttpSource(settings.remote_url, settings.remote_token, settings.timeout) as http:
        yield TimeoutSource(http, settings.timeout)


def _ask_password(prompt: str = "Master password", env_var: str = "VAULTSYNC_PASSWORD") -> str:
    env = os.environ.get(env_var)
    if env:
        return env
    return Prompt.ask(prompt, password=True, console=console)


def _run(coro):
    """Run *coro*, turning storage failures into a message and exit status 1."""
    try:
        return asyncio.run(coro)
    except VaultError as exc:
        err.print(f"[danger]{_ERROR_HINTS[exc.kind]}[/danger] [muted]({escape(str(exc))})[/muted]")
        raise typer.Exit(1) from exc


async def _unlock(store: Store, settings: Settings) -> tuple[Collection, Session]:
    """Prompt for the master password and load the local collection."""
    collection = Collection(settings.collection)
    if not await store.exists(collection):
        err.print(f"[danger]{_ERROR_HINTS[ErrorKind.NOT_FOUND]}[/danger]")
        raise typer.Exit(1)
    session = Session(_ask_password())
    await store.fetch(collection, session)
    return collection, session


def _find_one(collection: Collection, name: str) -> Record:
    """Return the unique live record matching *name* (exact then partial)."""
    name_l = name.lower()
    live = collection.live()
    exact = [r for r in live if (r.name or "").lower() == name_l]
    if len(exact) == 1:
        return exact[0]
    if len(exact) > 1:
        err.print(f"[warning]Multiple exact matches for '{name}' — please be more specific.[/warning]")
        for r in exact:
            err.print(f"  • {r.name} ({r.uuid[:8]})")
        raise typer.Exit(1)

    partial = [r for r in live if name_l in (r.name or "").lower()]
    if len(partial) == 1:
        return partial[0]
    if len(partial) > 1:
        err.print(f"[warning]Multiple partial matches for '{name}':[/warning]")
        for r in partial:
            err.print(f"  • {r.name}")
        raise typer.Exit(1)

    err.print(f"[danger]No record found matching '[bold]{name}[/bold]'.[/danger]")
    raise typer.Exit(1)


def _parse_fields(pairs: Optional[list[str]]) -> list[RecordField]:
    fields = []
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep:
            err.print(f"[danger]Expected NAME=VALUE, got '{pair}'.[/danger]")
            raise typer.Exit(1)
        fields.append(RecordField(name=name.strip(), value=value))
    return fields


def _prompt_secrets(names: Optional[list[str]]) -> list[RecordField]:
    return [
        RecordField(name=n, value=Prompt.ask(f"  {n}", password=True, console=console), masked=True)
        for n in names or []
    ]


def _split_tags(tags: str) -> list[str]:
    return [t.strip() for t in tags.split(",") if t.strip()]


def _render_record(record: Record, *, show_masked: bool = False) -> None:
    body = Text()

    def row(label: str, value: str, style: str = "highlight") -> None:
        body.append(f"  {label:<12}", style="label")
        body.append(value + "\n", style=style)

    for f in record.fields:
        if f.masked and not show_masked:
            row(f.name, "••••••••••••", style="muted")
        else:
            row(f.name, f.value, style="bold green" if f.masked else "highlight")
    if record.tags:
        row("Tags", "  ".join(f"#{t}" for t in record.tags), style="yellow")
    row("Updated", record.updated.strftime("%Y-%m-%d %H:%M UTC"), style="muted")
    row("UUID", record.uuid[:8] + "…", style="muted")

    console.print(
        Panel(body, title=f"[bold cyan]{record.name}[/bold cyan]", expand=False, border_style="cyan")
    )


def _render_table(records: list[Record], title: str = "Records") -> None:
    table = Table(
        title=title,
        box=box.ROUNDED,
        header_style="bold cyan",
        show_lines=False,
        highlight=True,
        title_style="bold",
    )
    table.add_column("#", style="muted", justify="right", no_wrap=True)
    table.add_column("Name", style="bold white", min_width=16)
    table.add_column("Fields", style="dim", min_width=14)
    table.add_column("Tags", style="yellow")
    table.add_column("Updated", style="muted", no_wrap=True)

    for i, r in enumerate(sorted(records, key=lambda x: (x.name or "").lower()), 1):
        table.add_row(
            str(i),
            r.name or "",
            ", ".join(f.name for f in r.fields),
            " ".join(f"#{t}" for t in r.tags),
            r.updated.strftime("%Y-%m-%d"),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def init(
    force: Annotated[bool, typer.Option("--force", "-f", help="Overwrite an existing collection.")] = False,
) -> None:
    """Create an empty encrypted collection in the local data directory."""
    settings = _settings()
    store = _store(settings)
    collection = Collection(settings.collection)

    if _run(store.exists(collection)) and not force:
        overwrite = Confirm.ask(
            "[warning]A collection already exists here. Overwrite?[/warning]",
            default=False,
            console=console,
        )
        if not overwrite:
            raise typer.Exit(0)

    console.print(
        Panel(
            "[bold]Welcome to vaultsync[/bold]\n"
            "[muted]Choose a strong master password — it cannot be recovered if lost.[/muted]",
            title="[bold cyan]Initialisation[/bold cyan]",
            border_style="cyan",
            expand=False,
        )
    )

    pw = _ask_password("  Master password")
    if not pw:
        err.print("[danger]Master password cannot be empty.[/danger]")
        raise typer.Exit(1)
    if not os.environ.get("VAULTSYNC_PASSWORD"):
        confirm = Prompt.ask("  Confirm password", password=True, console=console)
        if pw != confirm:
            err.print("[danger]Passwords do not match.[/danger]")
            raise typer.Exit(1)

    with Session(pw) as session:
        _run(store.save(collection, session))
    console.print(f"\n[success]Collection created →[/success] [bold]{settings.data_dir / collection.key}[/bold]")


@app.command()
def add(
    name: Annotated[str, typer.Argument(help="Label for this record.")],
    field: Annotated[Optional[list[str]], typer.Option("--field", "-f", help="NAME=VALUE, repeatable.")] = None,
    secret: Annotated[Optional[list[str]], typer.Option("--secret", "-s", help="Field name to prompt for and mask, repeatable.")] = None,
    tags: Annotated[Optional[str], typer.Option("--tags", "-t", help="Comma-separated tags.")] = None,
) -> None:
    """Add a new record."""
    settings = _settings()
    store = _store(settings)

    async def _add() -> Record:
        collection, session = await _unlock(store, settings)
        with session:
            if any((r.name or "").lower() == name.lower() for r in collection.live()):
                err.print(f"[danger]A record named '[bold]{name}[/bold]' already exists.[/danger]")
                raise typer.Exit(1)
            record = Record(
                name=name,
                fields=_parse_fields(field) + _prompt_secrets(secret),
                tags=_split_tags(tags) if tags else [],
            )
            return await store.save(collection, session, record=record)

    saved = _run(_add())
    console.print(f"[success]Record '[bold]{saved.name}[/bold]' saved.[/success]")


@app.command()
def get(
    name: Annotated[str, typer.Argument(help="Record name (exact or partial).")],
    show: Annotated[bool, typer.Option("--show", help="Display masked values in plain text.")] = False,
) -> None:
    """Show a record's details."""
    settings = _settings()
    store = _store(settings)

    async def _get() -> Record:
        collection, session = await _unlock(store, settings)
        session.release()
        return _find_one(collection, name)

    _render_record(_run(_get()), show_masked=show)


@app.command("list")
def list_records(
    tag: Annotated[Optional[str], typer.Option("--tag", "-t", help="Filter by tag.")] = None,
) -> None:
    """List all live records in a table."""
    settings = _settings()
    store = _store(settings)

    async def _list() -> list[Record]:
        collection, session = await _unlock(store, settings)
        session.release()
        return collection.live()

    records = _run(_list())
    if tag:
        records = [r for r in records if tag.lower() in (t.lower() for t in r.tags)]
    if not records:
        console.print("[muted]No records match your query.[/muted]")
        return
    _render_table(records, title=f"Records ({len(records)} total)")


@app.command()
def update(
    name: Annotated[str, typer.Argument(help="Record name (exact or partial).")],
    new_name: Annotated[Optional[str], typer.Option("--name", help="Rename the record.")] = None,
    field: Annotated[Optional[list[str]], typer.Option("--field", "-f", help="NAME=VALUE to set, repeatable.")] = None,
    secret: Annotated[Optional[list[str]], typer.Option("--secret", "-s", help="Masked field to prompt for, repeatable.")] = None,
    tags: Annotated[Optional[str], typer.Option("--tags", "-t", help="Replace tags (comma-separated).")] = None,
) -> None:
    """Update an existing record."""
    settings = _settings()
    store = _store(settings)
    changes = _parse_fields(field) + _prompt_secrets(secret)

    async def _update() -> Optional[Record]:
        collection, session = await _unlock(store, settings)
        with session:
            record = _find_one(collection, name)
            patch: dict = {}
            if new_name and new_name != record.name:
                patch["name"] = new_name
            if tags is not None:
                patch["tags"] = _split_tags(tags)
            if changes:
                fields = list(record.fields)
                for change in changes:
                    for i, existing in enumerate(fields):
                        if existing.name == change.name:
                            fields[i] = change.model_copy(update={"masked": existing.masked or change.masked})
                            break
                    else:
                        fields.append(change)
                patch["fields"] = fields
            if not patch:
                return None
            return await store.save(collection, session, record=record.model_copy(update=patch))

    saved = _run(_update())
    if saved is None:
        console.print("[muted]No changes made.[/muted]")
        return
    console.print(f"[success]Record '[bold]{saved.name}[/bold]' updated.[/success]")


@app.command()
def remove(
    name: Annotated[str, typer.Argument(help="Record name (exact or partial).")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
) -> None:
    """Remove a record; the removal propagates on the next sync."""
    settings = _settings()
    store = _store(settings)

    async def _remove() -> str:
        collection, session = await _unlock(store, settings)
        with session:
            record = _find_one(collection, name)
            if not yes:
                confirmed = Confirm.ask(
                    f"  Remove '[bold]{record.name}[/bold]'?",
                    default=False,
                    console=console,
                )
                if not confirmed:
                    raise typer.Exit(0)
            collection.remove(record)
            await store.save(collection, session)
            return record.name or ""

    removed = _run(_remove())
    console.print(f"[danger]Record '[bold]{removed}[/bold]' removed.[/danger]")


@app.command()
def sync() -> None:
    """Synchronise the local collection with the configured remote."""
    settings = _settings()
    store = _store(settings)

    async def _sync():
        collection, session = await _unlock(store, settings)
        with session:
            async with _open_remote(settings) as remote:
                return await SyncCoordinator(store).run(collection, session, store.default_source, remote)

    report = _run(_sync())
    if not report.remote_found:
        console.print("[muted]Remote was empty; published the local collection.[/muted]")
    console.print(
        f"[success]Sync complete:[/success] {report.pulled} pulled, {report.pushed} records published."
    )


@app.command()
def passwd() -> None:
    """Change the master password."""
    settings = _settings()
    store = _store(settings)

    async def _passwd() -> None:
        collection, session = await _unlock(store, settings)
        with session:
            new = _ask_password("  New master password", env_var="VAULTSYNC_NEW_PASSWORD")
            if not new:
                err.print("[danger]Master password cannot be empty.[/danger]")
                raise typer.Exit(1)
            if not os.environ.get("VAULTSYNC_NEW_PASSWORD"):
                confirm = Prompt.ask("  Confirm password", password=True, console=console)
                if new != confirm:
                    err.print("[danger]Passwords do not match.[/danger]")
                    raise typer.Exit(1)
            await store.change_password(collection, session, new)

    _run(_passwd())
    console.print("[success]Master password changed.[/success]")


@app.command()
def info() -> None:
    """Show settings and collection statistics."""
    settings = _settings()
    store = _store(settings)
    collection = Collection(settings.collection)
    exists = _run(store.exists(collection))

    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Version", __version__)
    table.add_row("Data dir", str(settings.data_dir))
    table.add_row("Collection", settings.collection)
    table.add_row("Remote", settings.remote_url or "[muted]not configured[/muted]")
    table.add_row("Stored", "[green]yes[/green]" if exists else "[red]no[/red]")

    if exists:

        async def _load() -> Collection:
            loaded, session = await _unlock(store, settings)
            session.release()
            return loaded

        loaded = _run(_load())
        table.add_row("Records", str(len(loaded.live())))
        table.add_row("Tombstones", str(len(loaded) - len(loaded.live())))

    console.print(Panel(table, title="[bold cyan]vaultsync info[/bold cyan]", border_style="cyan", expand=False))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    app()


if __name__ == "__main__":
    main()

"""``pst-viewer`` command-line interface.

Each command opens the archive through an :class:`ArchiveStore`, runs
one operation and exits.  Messages are addressed by folder id (as shown
by ``tree``) and their 0-based position in archive order (as shown by
``list``).  Errors surface as a message on stderr and exit code 1.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Optional, TypeVar

import typer

from .attachments import AttachmentMaterializer, remove_stale_files
from .backend import ArchiveBackend
from .batch import BatchExporter
from .config import ViewerConfig
from .errors import ParseError, ViewerError
from .export import MessageExporter, build_txt, suggested_filename
from .logging import configure_from
from .models import AttachmentSummary, ExportFormat, Folder, MessageDetail, MessageSummary, SearchFilters
from .search import SearchEngine
from .sorting import SortOrder, sort_messages
from .store import ArchiveStore

app = typer.Typer(help="Browse, search and export Outlook PST/OST archives.")
attachment_app = typer.Typer(help="Save or open message attachments.")
app.add_typer(attachment_app, name="attachment")

T = TypeVar("T")


def _make_backend() -> ArchiveBackend:
    from .backends.pff import PffBackend

    return PffBackend()


def _configure() -> ViewerConfig:
    config = ViewerConfig()
    configure_from(config.logging)
    return config


def _run(operation: Callable[[], Awaitable[T]]) -> T:
    try:
        return asyncio.run(operation())
    except ViewerError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


def _require_folder(store: ArchiveStore, folder_id: str) -> Folder:
    if store.archive is None:
        raise ParseError("No archive is open.")
    folder = store.archive.find_folder(folder_id)
    if folder is None:
        typer.echo(f"No folder with id {folder_id!r}.", err=True)
        raise typer.Exit(code=1)
    return folder


async def _load_message(
    store: ArchiveStore, archive_path: Path, folder_id: str, index: int
) -> MessageDetail:
    await store.open_archive(archive_path)
    messages = await store.list_messages(_require_folder(store, folder_id))
    if not 0 <= index < len(messages):
        typer.echo(f"Folder {folder_id!r} has no message at index {index}.", err=True)
        raise typer.Exit(code=1)
    return await store.get_detail(messages[index])


def _summary_line(index: int | None, message: MessageSummary) -> str:
    date = message.date.strftime("%Y-%m-%d %H:%M") if message.date else "-"
    prefix = f"{index:>5}  " if index is not None else ""
    sender = message.sender_display or "(unknown sender)"
    subject = message.subject or "(no subject)"
    return f"{prefix}{date:<16}  {sender[:30]:<30}  {subject}"


def _print_tree(folder: Folder, depth: int = 0) -> None:
    typer.echo(f"{'  ' * depth}{folder.display_name} ({folder.item_count})  [{folder.id}]")
    for child in folder.children:
        _print_tree(child, depth + 1)


def _parse_date(value: Optional[str], option: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise typer.BadParameter(f"expected an ISO date, got {value!r}", param_hint=option) from exc


# ------------------------------------------------------------------
# Browsing
# ------------------------------------------------------------------


@app.command("tree")
def tree(archive: Path = typer.Argument(..., help="Path to a .pst or .ost file")) -> None:
    """Print the folder tree with ids and item counts."""
    config = _configure()

    async def operation() -> None:
        async with ArchiveStore(_make_backend(), config.cache) as store:
            opened = await store.open_archive(archive)
            _print_tree(opened.root)

    _run(operation)


@app.command("list")
def list_messages(
    archive: Path = typer.Argument(..., help="Path to a .pst or .ost file"),
    folder_id: str = typer.Argument(..., help="Folder id as printed by 'tree'"),
    sort: SortOrder = typer.Option(SortOrder.DATE_DESC, help="Listing order"),
) -> None:
    """List the messages of a folder."""
    config = _configure()

    async def operation() -> None:
        async with ArchiveStore(_make_backend(), config.cache) as store:
            await store.open_archive(archive)
            messages = await store.list_messages(_require_folder(store, folder_id))
            positions = {id(m): i for i, m in enumerate(messages)}
            for message in sort_messages(messages, sort):
                typer.echo(_summary_line(positions[id(message)], message))

    _run(operation)


@app.command("show")
def show(
    archive: Path = typer.Argument(..., help="Path to a .pst or .ost file"),
    folder_id: str = typer.Argument(..., help="Folder id as printed by 'tree'"),
    index: int = typer.Argument(..., help="Message position as printed by 'list'"),
) -> None:
    """Print a message's headers, body and attachment list."""
    config = _configure()

    async def operation() -> None:
        async with ArchiveStore(_make_backend(), config.cache) as store:
            detail = await _load_message(store, archive, folder_id, index)
            typer.echo(build_txt(detail).decode("utf-8"), nl=False)
            for position, attachment in enumerate(detail.attachments):
                size = f"{attachment.size} bytes" if attachment.size is not None else "size unknown"
                typer.echo(f"[{position}] {attachment.filename or 'attachment'} ({size})")

    _run(operation)


@app.command("search")
def search(
    archive: Path = typer.Argument(..., help="Path to a .pst or .ost file"),
    query: str = typer.Argument(..., help="Text to look for (case-insensitive)"),
    body: bool = typer.Option(False, "--body", help="Also search message bodies"),
    sender: Optional[str] = typer.Option(None, help="Sender name or address contains"),
    since: Optional[str] = typer.Option(None, help="Earliest date (ISO 8601)"),
    until: Optional[str] = typer.Option(None, help="Latest date (ISO 8601)"),
    attachments: Optional[bool] = typer.Option(
        None, "--attachments/--no-attachments", help="Require attachments to be present or absent"
    ),
    folder_id: Optional[str] = typer.Option(
        None, "--folder", help="Restrict to this folder subtree (default: the user folders)"
    ),
) -> None:
    """Search subjects and senders, optionally bodies, under a folder."""
    config = _configure()
    try:
        filters = SearchFilters.build(
            date_from=_parse_date(since, "--since"),
            date_to=_parse_date(until, "--until"),
            sender=sender,
            has_attachments=attachments,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    async def operation() -> None:
        async with ArchiveStore(_make_backend(), config.cache) as store:
            opened = await store.open_archive(archive)
            root = _require_folder(store, folder_id) if folder_id else opened.user_root
            engine = SearchEngine(store, config.search)
            results = await engine.search([root], query, filters, include_body=body)
            for message in results:
                typer.echo(_summary_line(None, message))
            typer.echo(f"{len(results)} result(s).", err=True)

    _run(operation)


# ------------------------------------------------------------------
# Export
# ------------------------------------------------------------------


@app.command("export")
def export(
    archive: Path = typer.Argument(..., help="Path to a .pst or .ost file"),
    folder_id: str = typer.Argument(..., help="Folder id as printed by 'tree'"),
    index: int = typer.Argument(..., help="Message position as printed by 'list'"),
    output: Path = typer.Argument(..., help="Destination file, or a directory to use the suggested name"),
    fmt: ExportFormat = typer.Option(ExportFormat.EML, "--format", help="Output format"),
) -> None:
    """Export one message as EML or plain text."""
    config = _configure()

    async def operation() -> Path:
        async with ArchiveStore(_make_backend(), config.cache) as store:
            detail = await _load_message(store, archive, folder_id, index)
            target = output / suggested_filename(detail, fmt) if output.is_dir() else output
            return await asyncio.to_thread(MessageExporter().export_message, detail, target, fmt)

    typer.echo(str(_run(operation)))


@app.command("export-folder")
def export_folder(
    archive: Path = typer.Argument(..., help="Path to a .pst or .ost file"),
    folder_id: str = typer.Argument(..., help="Folder id as printed by 'tree'"),
    directory: Path = typer.Argument(..., help="Directory to write into"),
    fmt: ExportFormat = typer.Option(ExportFormat.EML, "--format", help="Output format"),
) -> None:
    """Export every message of a folder into a directory."""
    config = _configure()

    async def operation() -> bool:
        async with ArchiveStore(_make_backend(), config.cache) as store:
            await store.open_archive(archive)
            messages = await store.list_messages(_require_folder(store, folder_id))
            report = await BatchExporter(store).export_messages(messages, directory, fmt)
            typer.echo(report.summary())
            for failure in report.failures:
                typer.echo(f"  #{failure.index} {failure.subject or '(no subject)'}: {failure.error}", err=True)
            return report.failed_count == 0

    if not _run(operation):
        raise typer.Exit(code=1)


# ------------------------------------------------------------------
# Attachments
# ------------------------------------------------------------------


def _materializer(store: ArchiveStore, config: ViewerConfig) -> AttachmentMaterializer:
    materializer = AttachmentMaterializer(
        store,
        config.attachments,
        confirm=lambda name: typer.confirm(
            f'"{name}" may be an executable file. Open it anyway?', default=False
        ),
    )
    materializer.cleanup_stale()
    return materializer


async def _load_attachment(
    store: ArchiveStore, archive: Path, folder_id: str, index: int, attachment_index: int
) -> AttachmentSummary:
    detail = await _load_message(store, archive, folder_id, index)
    if not 0 <= attachment_index < len(detail.attachments):
        typer.echo(f"Message has no attachment at index {attachment_index}.", err=True)
        raise typer.Exit(code=1)
    return detail.attachments[attachment_index]


@attachment_app.command("save")
def attachment_save(
    archive: Path = typer.Argument(..., help="Path to a .pst or .ost file"),
    folder_id: str = typer.Argument(..., help="Folder id as printed by 'tree'"),
    index: int = typer.Argument(..., help="Message position as printed by 'list'"),
    attachment_index: int = typer.Argument(..., help="Attachment position as printed by 'show'"),
    output: Path = typer.Argument(..., help="Destination file"),
) -> None:
    """Write an attachment's bytes to a file."""
    config = _configure()

    async def operation() -> Path:
        async with ArchiveStore(_make_backend(), config.cache) as store:
            materializer = _materializer(store, config)
            attachment = await _load_attachment(store, archive, folder_id, index, attachment_index)
            return await materializer.save_to(attachment, output)

    typer.echo(str(_run(operation)))


@attachment_app.command("open")
def attachment_open(
    archive: Path = typer.Argument(..., help="Path to a .pst or .ost file"),
    folder_id: str = typer.Argument(..., help="Folder id as printed by 'tree'"),
    index: int = typer.Argument(..., help="Message position as printed by 'list'"),
    attachment_index: int = typer.Argument(..., help="Attachment position as printed by 'show'"),
) -> None:
    """Open an attachment with the default application."""
    config = _configure()

    async def operation() -> Optional[Path]:
        async with ArchiveStore(_make_backend(), config.cache) as store:
            materializer = _materializer(store, config)
            attachment = await _load_attachment(store, archive, folder_id, index, attachment_index)
            return await materializer.open_transient(attachment)

    opened = _run(operation)
    if opened is None:
        typer.echo("Not opened.", err=True)
        raise typer.Exit(code=1)
    typer.echo(str(opened))


@app.command("cleanup")
def cleanup(
    max_age: Optional[float] = typer.Option(
        None, "--max-age", help="Remove transient files older than this many seconds"
    ),
) -> None:
    """Remove leftover transient attachment files."""
    config = _configure()
    directory = config.attachments.temp_dir
    if max_age is None:
        max_age = config.attachments.stale_max_age_seconds
    count = remove_stale_files(directory, max_age)
    typer.echo(f"Removed {count} file(s) from {directory}.")

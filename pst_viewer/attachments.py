"""Save attachments to disk, or materialise them in a managed temp
directory and hand them to the platform's default application.
"""

from __future__ import annotations

import asyncio
import os
import secrets
import shutil
import stat
import subprocess
import sys
import time
from collections.abc import Callable
from pathlib import Path, PurePosixPath

import structlog

from .config import AttachmentConfig
from .errors import NoApplicationAvailableError, NoDataError
from .export import MessageExporter
from .models import AttachmentSummary
from .store import ArchiveStore

logger = structlog.get_logger()

Opener = Callable[[Path], bool]
Confirm = Callable[[str], bool]


def open_with_default_application(path: Path) -> bool:
    """Launch *path* with the desktop's default handler; ``False`` on failure."""
    if sys.platform == "win32":
        try:
            os.startfile(path)  # type: ignore[attr-defined]
        except OSError:
            return False
        return True

    command = "open" if sys.platform == "darwin" else "xdg-open"
    try:
        result = subprocess.run([command, str(path)], capture_output=True, check=False)
    except OSError:
        return False
    return result.returncode == 0


def sanitize_attachment_filename(raw: str | None) -> str:
    """Reduce a stored attachment name to a safe basename.

    Only the last path component is kept (either separator style) and any
    ``..`` left in it is replaced, so the result cannot leave the target
    directory.
    """
    name = PurePosixPath((raw or "").replace("\\", "/")).name
    if name in (".", ".."):
        name = ""
    name = name.replace("..", "_").strip()
    return name or "attachment"


def unique_filename(filename: str) -> str:
    path = PurePosixPath(filename)
    return f"{path.stem}_{secrets.token_hex(4)}{path.suffix}"


class AttachmentMaterializer:
    """Writes attachment payloads loaded through an :class:`ArchiveStore`.

    Files opened with :meth:`open_transient` are tracked so that
    :meth:`cleanup_tracked` can remove them; :meth:`cleanup_stale` reclaims
    files left behind by earlier sessions.
    """

    def __init__(
        self,
        store: ArchiveStore,
        config: AttachmentConfig | None = None,
        *,
        opener: Opener = open_with_default_application,
        confirm: Confirm | None = None,
        exporter: MessageExporter | None = None,
    ) -> None:
        self._store = store
        self._config = config or AttachmentConfig()
        self._opener = opener
        self._confirm = confirm
        self._exporter = exporter or MessageExporter()
        self._blocked = frozenset(self._config.blocked_extensions)
        self._tracked: list[Path] = []

    @property
    def temp_dir(self) -> Path:
        return self._config.temp_dir

    @property
    def tracked_files(self) -> list[Path]:
        return list(self._tracked)

    def is_risky(self, filename: str) -> bool:
        suffix = PurePosixPath(filename).suffix.lower().lstrip(".")
        return suffix in self._blocked

    # ------------------------------------------------------------------
    # Save / open
    # ------------------------------------------------------------------

    async def save_to(self, attachment: AttachmentSummary, path: str | Path) -> Path:
        """Write the attachment's bytes verbatim to *path*."""
        detail = await self._store.get_attachment_detail(attachment)
        if detail.data is None:
            raise NoDataError()
        return await asyncio.to_thread(self._exporter.save_attachment, detail, Path(path))

    async def open_transient(self, attachment: AttachmentSummary) -> Path | None:
        """Materialise the attachment in the temp directory and open it.

        Returns the written path, or ``None`` if opening a risky file type
        was not confirmed.
        """
        detail = await self._store.get_attachment_detail(attachment)
        if detail.data is None:
            raise NoDataError()

        filename = sanitize_attachment_filename(detail.filename)
        if self.is_risky(filename):
            confirmed = self._confirm is not None and self._confirm(filename)
            if not confirmed:
                logger.info("attachment_open_declined", filename=filename)
                return None

        target = self._config.temp_dir / unique_filename(filename)
        await asyncio.to_thread(self._write, target, detail.data)
        self._tracked.append(target)
        logger.info("attachment_materialized", path=str(target), size=len(detail.data))

        opened = await asyncio.to_thread(self._opener, target)
        if not opened:
            raise NoApplicationAvailableError(filename)
        return target

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        directory = target.parent
        directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        if sys.platform != "win32" and stat.S_IMODE(directory.stat().st_mode) & 0o077:
            directory.chmod(0o700)
        target.write_bytes(data)

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def cleanup_tracked(self) -> int:
        """Remove every file this instance materialised.  Returns the count removed."""
        removed = 0
        for path in self._tracked:
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.warning("tracked_temp_file_not_removed", path=str(path), error=str(exc))
        self._tracked.clear()
        return removed

    def cleanup_stale(self, max_age_seconds: float | None = None) -> int:
        """Remove leftovers older than *max_age_seconds* (default: the configured age)."""
        if max_age_seconds is None:
            max_age_seconds = self._config.stale_max_age_seconds
        return remove_stale_files(self._config.temp_dir, max_age_seconds)


def remove_stale_files(directory: Path, max_age_seconds: float) -> int:
    """Remove entries in *directory* older than *max_age_seconds*.

    Best-effort: entries that cannot be inspected or removed are skipped.
    Returns the number of entries removed.
    """
    if not directory.is_dir():
        return 0

    cutoff = time.time() - max_age_seconds
    removed = 0
    for entry in directory.iterdir():
        try:
            if entry.lstat().st_mtime >= cutoff:
                continue
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        except OSError as exc:
            logger.debug("stale_temp_file_not_removed", path=str(entry), error=str(exc))
            continue
        removed += 1
        logger.debug("stale_temp_file_removed", path=str(entry))

    if removed:
        logger.info("stale_temp_files_cleaned", directory=str(directory), removed=removed)
    return removed

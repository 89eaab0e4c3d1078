"""ArchiveStore: the single access point to the archive parser.

The parser's objects are not thread-safe, so every parser call (and every
cache read or write) runs on one dedicated worker thread.  Requests are
submitted with ``loop.run_in_executor`` and processed strictly in FIFO
order, which is also what keeps the detail cache consistent without a lock.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TypeVar

import structlog

from .backend import ArchiveBackend, ArchiveHandle, FolderHandle
from .cache import DetailCache
from .config import CacheConfig
from .errors import ArchiveNotFoundError, InvalidArchiveError, ParseError, ViewerError
from .models import Archive, AttachmentDetail, AttachmentSummary, Folder, MessageDetail, MessageSummary

logger = structlog.get_logger()

T = TypeVar("T")


class ArchiveStore:
    """Async facade over an :class:`ArchiveBackend`.

    Usage::

        async with ArchiveStore(backend) as store:
            archive = await store.open_archive(path)
            messages = await store.list_messages(archive.user_root)
            detail = await store.get_detail(messages[0])
    """

    def __init__(self, backend: ArchiveBackend, config: CacheConfig | None = None) -> None:
        self._backend = backend
        self._config = config or CacheConfig()
        self._cache = DetailCache(self._config.max_entries)
        self._executor: ThreadPoolExecutor | None = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="pst-parser",
        )
        self._handle: ArchiveHandle | None = None
        self._archive: Archive | None = None

    @property
    def archive(self) -> Archive | None:
        return self._archive

    async def __aenter__(self) -> ArchiveStore:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def open_archive(self, path: str | Path) -> Archive:
        """Open *path*, resolve its folder tree and flush the detail cache."""
        archive = await self._submit(self._open_sync, Path(path))
        logger.info(
            "archive_opened",
            path=str(archive.path),
            folders=sum(1 for _ in archive.root.walk()),
        )
        return archive

    async def list_messages(self, folder: Folder) -> list[MessageSummary]:
        """Return the folder's message summaries in archive order."""
        return await self._submit(self._list_messages_sync, folder)

    async def get_detail(self, message: MessageSummary) -> MessageDetail:
        """Return the full detail for *message*, from the cache when possible."""
        return await self._submit(self._get_detail_sync, message)

    async def get_attachment_detail(self, attachment: AttachmentSummary) -> AttachmentDetail:
        """Load an attachment's payload.  Payloads are never cached."""
        return await self._submit(self._get_attachment_detail_sync, attachment)

    async def clear_cache(self) -> None:
        await self._submit(self._cache.clear)
        logger.info("detail_cache_cleared")

    async def close(self) -> None:
        """Close the open archive and stop the worker."""
        if self._executor is None:
            return
        await self._submit(self._close_sync)
        self._executor.shutdown(wait=True)
        self._executor = None
        logger.info("archive_store_closed")

    # ------------------------------------------------------------------
    # Worker dispatch
    # ------------------------------------------------------------------

    async def _submit(self, fn: Callable[..., T], *args: object) -> T:
        if self._executor is None:
            raise ParseError("The archive store has been closed.")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    # ------------------------------------------------------------------
    # Synchronous helpers (run on the worker thread)
    # ------------------------------------------------------------------

    def _open_sync(self, path: Path) -> Archive:
        # A new archive invalidates every fingerprint, whatever the outcome.
        self._cache.clear()

        if not path.is_file():
            raise ArchiveNotFoundError(path)

        try:
            handle = self._backend.open(path)
        except Exception as exc:
            raise InvalidArchiveError(exc) from exc

        try:
            root_handle = handle.root_folder
            if root_handle is None:
                raise ParseError("Could not read folder structure from this file.")
            root = self._resolve_folder(root_handle, (0,))
            user_root = self._find_by_handle(root, handle.user_root_folder) or root
        except Exception:
            handle.close()
            raise

        if self._handle is not None:
            self._handle.close()
        self._handle = handle
        self._archive = Archive(path=path, root=root, user_root=user_root)
        return self._archive

    def _resolve_folder(self, handle: FolderHandle, index_path: tuple[int, ...]) -> Folder:
        try:
            name = handle.name
            item_count = handle.item_count
            child_handles = handle.children
        except ViewerError:
            raise
        except Exception as exc:
            raise ParseError(f"folder {'.'.join(map(str, index_path))}: {exc}") from exc

        children = tuple(
            self._resolve_folder(child, (*index_path, i))
            for i, child in enumerate(child_handles)
        )
        folder_id = ".".join(str(i) for i in index_path) + "." + (name or "Unknown")
        return Folder(
            id=folder_id,
            name=name,
            item_count=item_count,
            children=children,
            handle=handle,
        )

    @staticmethod
    def _find_by_handle(root: Folder, handle: FolderHandle | None) -> Folder | None:
        if handle is None:
            return None
        for folder in root.walk():
            if folder.handle is handle:
                return folder
        return None

    def _list_messages_sync(self, folder: Folder) -> list[MessageSummary]:
        self._require_open()
        if folder.handle is None:
            raise ParseError(f"folder {folder.id} has no parser handle")
        try:
            messages = folder.handle.list_messages()
        except ViewerError:
            raise
        except Exception as exc:
            raise ParseError(f"folder {folder.display_name}: {exc}") from exc
        logger.debug("folder_listed", folder_id=folder.id, messages=len(messages))
        return messages

    def _get_detail_sync(self, message: MessageSummary) -> MessageDetail:
        self._require_open()
        cached = self._cache.get(message.fingerprint)
        if cached is not None:
            logger.debug("detail_cache_hit", fingerprint=message.fingerprint.hex())
            return cached

        if message.handle is None:
            raise ParseError("message has no parser handle")
        try:
            detail = message.handle.load_detail()
        except ViewerError:
            raise
        except Exception as exc:
            raise ParseError(f"message {message.subject or '(no subject)'}: {exc}") from exc

        self._cache.put(message.fingerprint, detail)
        return detail

    def _get_attachment_detail_sync(self, attachment: AttachmentSummary) -> AttachmentDetail:
        self._require_open()
        if attachment.handle is None:
            raise ParseError("attachment has no parser handle")
        try:
            return attachment.handle.load_detail()
        except ViewerError:
            raise
        except Exception as exc:
            raise ParseError(f"attachment {attachment.filename or '(unnamed)'}: {exc}") from exc

    def _close_sync(self) -> None:
        self._cache.clear()
        if self._handle is not None:
            self._handle.close()
        self._handle = None
        self._archive = None

    def _require_open(self) -> None:
        if self._handle is None:
            raise ParseError("No archive is open.")

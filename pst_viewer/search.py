"""Recursive, filterable, cancellable search over a folder subtree.

Matching is staged: the query is first tested against the subject and
sender (cheap, already in the summary).  Only when that misses and body
search was requested is the message detail loaded and its plain-text
body tested.
"""

from __future__ import annotations

import time
from collections.abc import Sequence

import structlog

from .config import SearchConfig
from .errors import SearchCancelled
from .models import Folder, MessageSummary, SearchFilters
from .store import ArchiveStore

logger = structlog.get_logger()


class CancellationToken:
    """Cooperative cancellation flag checked between units of work."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise SearchCancelled()


class _ResultCapReached(Exception):
    pass


class SearchEngine:
    """Depth-first search over folders served by an :class:`ArchiveStore`.

    The traversal is sequential on purpose: results come back in folder
    order, and the result cap and cancellation checks stay simple.
    """

    def __init__(self, store: ArchiveStore, config: SearchConfig | None = None) -> None:
        self._store = store
        self._max_results = (config or SearchConfig()).max_results

    @property
    def max_results(self) -> int:
        return self._max_results

    async def search(
        self,
        roots: Sequence[Folder],
        query: str,
        filters: SearchFilters | None = None,
        *,
        include_body: bool = False,
        cancel: CancellationToken | None = None,
    ) -> list[MessageSummary]:
        """Return summaries under *roots* matching *query* and *filters*.

        Raises :class:`~pst_viewer.errors.SearchCancelled` when *cancel*
        is triggered, and :class:`~pst_viewer.errors.ParseError` when a
        folder or message cannot be read.
        """
        needle = query.strip().casefold()
        if not needle:
            return []

        filters = filters or SearchFilters()
        token = cancel or CancellationToken()
        results: list[MessageSummary] = []
        started = time.monotonic()

        try:
            for root in roots:
                await self._search_folder(root, needle, filters, include_body, token, results)
        except _ResultCapReached:
            logger.info("search_result_cap_reached", max_results=self._max_results)
        except SearchCancelled:
            logger.info("search_cancelled", partial_results=len(results))
            raise

        logger.info(
            "search_completed",
            results=len(results),
            include_body=include_body,
            elapsed_seconds=round(time.monotonic() - started, 3),
        )
        return results

    async def _search_folder(
        self,
        folder: Folder,
        needle: str,
        filters: SearchFilters,
        include_body: bool,
        token: CancellationToken,
        results: list[MessageSummary],
    ) -> None:
        token.raise_if_cancelled()
        if len(results) >= self._max_results:
            raise _ResultCapReached()

        messages = await self._store.list_messages(folder)
        for message in messages:
            token.raise_if_cancelled()
            if not filters.matches(message):
                continue

            if _matches_metadata(message, needle) or (
                include_body and await self._matches_body(message, needle)
            ):
                results.append(message)
                if len(results) >= self._max_results:
                    raise _ResultCapReached()

        # Children only after this folder's own messages are done.
        for child in folder.children:
            await self._search_folder(child, needle, filters, include_body, token, results)

    async def _matches_body(self, message: MessageSummary, needle: str) -> bool:
        detail = await self._store.get_detail(message)
        return bool(detail.body_text) and needle in detail.body_text.casefold()


def _matches_metadata(message: MessageSummary, needle: str) -> bool:
    for value in (message.subject, message.sender_display):
        if value and needle in value.casefold():
            return True
    return False


class SearchSession:
    """Runs one search at a time; starting a new search cancels the previous one.

    Only the latest search delivers results; a superseded search raises
    :class:`~pst_viewer.errors.SearchCancelled` at its next checkpoint.
    """

    def __init__(self, engine: SearchEngine) -> None:
        self._engine = engine
        self._current: CancellationToken | None = None

    @property
    def active(self) -> bool:
        return self._current is not None and not self._current.cancelled

    async def run(
        self,
        roots: Sequence[Folder],
        query: str,
        filters: SearchFilters | None = None,
        *,
        include_body: bool = False,
    ) -> list[MessageSummary]:
        self.cancel()
        token = CancellationToken()
        self._current = token
        try:
            return await self._engine.search(
                roots,
                query,
                filters,
                include_body=include_body,
                cancel=token,
            )
        finally:
            if self._current is token:
                self._current = None

    def cancel(self) -> None:
        """Cancel the active search, if any."""
        if self._current is not None:
            self._current.cancel()
            self._current = None

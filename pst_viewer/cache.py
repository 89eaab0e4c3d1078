"""Least-recently-used cache of loaded message details, keyed by fingerprint."""

from __future__ import annotations

from collections import OrderedDict

import structlog

from .models import MessageDetail

logger = structlog.get_logger()


class DetailCache:
    """Bounded LRU mapping ``fingerprint -> MessageDetail``.

    Not thread-safe: the store only touches it from its worker thread.
    """

    def __init__(self, max_entries: int = 50) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._entries: OrderedDict[bytes, MessageDetail] = OrderedDict()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._entries

    def get(self, fingerprint: bytes) -> MessageDetail | None:
        """Return the cached detail and promote it to most-recently-used."""
        detail = self._entries.get(fingerprint)
        if detail is not None:
            self._entries.move_to_end(fingerprint)
        return detail

    def put(self, fingerprint: bytes, detail: MessageDetail) -> None:
        self._entries[fingerprint] = detail
        self._entries.move_to_end(fingerprint)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("detail_cache_evicted", fingerprint=evicted.hex())

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[bytes]:
        """Fingerprints from least- to most-recently-used."""
        return list(self._entries)

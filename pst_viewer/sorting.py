"""Ordering of message listings."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .models import MessageSummary, as_utc

_DISTANT_PAST = datetime.min.replace(tzinfo=UTC)


class SortOrder(str, Enum):
    DATE_ASC = "date-asc"
    DATE_DESC = "date-desc"
    SUBJECT_ASC = "subject-asc"
    SUBJECT_DESC = "subject-desc"
    SENDER_ASC = "sender-asc"
    SENDER_DESC = "sender-desc"
    SIZE_ASC = "size-asc"
    SIZE_DESC = "size-desc"

    @property
    def descending(self) -> bool:
        return self.value.endswith("-desc")


_KEYS: dict[str, Callable[[MessageSummary], Any]] = {
    "date": lambda m: as_utc(m.date) if m.date is not None else _DISTANT_PAST,
    "subject": lambda m: (m.subject or "").casefold(),
    "sender": lambda m: (m.sender_display or "").casefold(),
    "size": lambda m: m.size or 0,
}


def sort_messages(
    messages: Iterable[MessageSummary],
    order: SortOrder = SortOrder.DATE_DESC,
) -> list[MessageSummary]:
    """Return a new list sorted by *order*.

    Text compares case-insensitively.  Missing dates sort as the distant
    past, missing text as empty and missing sizes as zero.  The sort is
    stable.
    """
    field_name = order.value.split("-", 1)[0]
    return sorted(messages, key=_KEYS[field_name], reverse=order.descending)

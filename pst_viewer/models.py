"""Data models for folders, messages, attachments and search filters.

Summaries and details are frozen dataclasses carrying an opaque parser
handle (excluded from equality and repr).  Handles must only be used
from the store's worker thread; see :class:`pst_viewer.store.ArchiveStore`.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, IntFlag
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, model_validator

if TYPE_CHECKING:
    from .backend import AttachmentHandle, FolderHandle, MessageHandle


class Importance(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class MessageFlags(IntFlag):
    """Subset of the MAPI message flag bits surfaced by the parser."""

    NONE = 0
    READ = 0x01
    UNMODIFIED = 0x02
    SUBMITTED = 0x04
    UNSENT = 0x08
    HAS_ATTACHMENTS = 0x10
    FROM_ME = 0x20


class ExportFormat(str, Enum):
    EML = "eml"
    TXT = "txt"

    @property
    def extension(self) -> str:
        return self.value


def as_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# ------------------------------------------------------------------
# Folder tree
# ------------------------------------------------------------------


@dataclass(frozen=True)
class Folder:
    """A resolved folder node.

    ``id`` is derived from the index path from the root plus the folder
    name, so it is stable for a given archive as long as child order is.
    """

    id: str
    name: str | None
    item_count: int
    children: tuple[Folder, ...] = ()
    handle: FolderHandle | None = field(default=None, repr=False, compare=False)

    @property
    def display_name(self) -> str:
        return self.name or "Unknown"

    def walk(self) -> Iterator[Folder]:
        """Yield this folder and its descendants in depth-first pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class Archive:
    """An opened archive: its path and resolved folder tree."""

    path: Path
    root: Folder
    user_root: Folder

    def find_folder(self, folder_id: str) -> Folder | None:
        for folder in self.root.walk():
            if folder.id == folder_id:
                return folder
        return None


# ------------------------------------------------------------------
# Messages and attachments
# ------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class AttachmentSummary:
    filename: str | None = None
    mime_type: str | None = None
    content_id: str | None = None
    size: int | None = None
    handle: AttachmentHandle | None = field(default=None, repr=False, compare=False)


@dataclass(frozen=True, kw_only=True)
class AttachmentDetail(AttachmentSummary):
    """An attachment together with its raw payload (``None`` if unreadable)."""

    data: bytes | None = field(default=None, repr=False)


@dataclass(frozen=True, kw_only=True)
class MessageSummary:
    """Lightweight message metadata as listed from a folder.

    ``fingerprint`` is opaque and stable for the same message across
    calls; it keys the detail cache.
    """

    fingerprint: bytes
    subject: str | None = None
    sender_name: str | None = None
    sender_address: str | None = None
    date: datetime | None = None
    size: int | None = None
    has_attachments: bool = False
    handle: MessageHandle | None = field(default=None, repr=False, compare=False)

    @property
    def sender_display(self) -> str | None:
        return self.sender_name or self.sender_address


@dataclass(frozen=True, kw_only=True)
class MessageDetail(MessageSummary):
    """A fully loaded message."""

    to: str | None = None
    cc: str | None = None
    bcc: str | None = None
    body_text: str | None = None
    body_html: str | None = None
    transport_headers: str | None = None
    internet_message_id: str | None = None
    importance: Importance = Importance.NORMAL
    flags: MessageFlags = MessageFlags.NONE
    attachments: tuple[AttachmentSummary, ...] = ()


# ------------------------------------------------------------------
# Search filters
# ------------------------------------------------------------------


class SearchFilters(BaseModel):
    """Structured search filters; every unset field matches everything.

    The date interval is inclusive on both ends.  A one-sided interval
    leaves the other bound unset.
    """

    model_config = ConfigDict(frozen=True)

    date_from: datetime | None = Field(default=None, description="Earliest message date (inclusive)")
    date_to: datetime | None = Field(default=None, description="Latest message date (inclusive)")
    sender: str | None = Field(
        default=None,
        description="Case-insensitive substring of the sender name or address",
    )
    has_attachments: bool | None = Field(
        default=None,
        description="Require the attachment-presence flag to equal this value",
    )

    @model_validator(mode="after")
    def _check_interval(self) -> SearchFilters:
        if self.date_from is not None and self.date_to is not None:
            if as_utc(self.date_from) > as_utc(self.date_to):
                raise ValueError("date_from must not be after date_to")
        return self

    def matches(self, message: MessageSummary) -> bool:
        if message.date is not None and not self._date_in_range(message.date):
            return False

        if self.sender is not None:
            needle = self.sender.casefold()
            candidates = (message.sender_name, message.sender_address)
            if not any(c and needle in c.casefold() for c in candidates):
                return False

        if self.has_attachments is not None and message.has_attachments != self.has_attachments:
            return False

        return True

    def _date_in_range(self, value: datetime) -> bool:
        moment = as_utc(value)
        if self.date_from is not None and moment < as_utc(self.date_from):
            return False
        if self.date_to is not None and moment > as_utc(self.date_to):
            return False
        return True

    @classmethod
    def build(
        cls,
        *,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        sender: str | None = None,
        has_attachments: bool | None = None,
    ) -> SearchFilters:
        """Build filters from raw user input, dropping a blank sender."""
        stripped = sender.strip() if sender is not None else ""
        return cls(
            date_from=date_from,
            date_to=date_to,
            sender=stripped or None,
            has_attachments=has_attachments,
        )

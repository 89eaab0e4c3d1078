"""Archive backend for Outlook PST/OST files using libpff (``pypff``).

Install with ``pip install pst-viewer[pff]``.  Sender addresses and
recipients are not exposed as item properties by libpff, so they are
taken from the transport headers with ``email.parser.HeaderParser``,
which parses only the header block.
"""

from __future__ import annotations

import email.parser
import email.utils
import mimetypes
from datetime import UTC, datetime
from email.message import Message
from pathlib import Path
from typing import Any

import pypff
import structlog

from ..backend import ArchiveBackend, ArchiveHandle, AttachmentHandle, FolderHandle, MessageHandle
from ..models import (
    AttachmentDetail,
    AttachmentSummary,
    Importance,
    MessageDetail,
    MessageFlags,
    MessageSummary,
)

logger = structlog.get_logger()

_USER_ROOT_NAMES = frozenset({
    "top of personal folders",
    "top of outlook data file",
    "top of information store",
    "ipm_subtree",
})


def _optional(item: Any, attribute: str) -> Any:
    """Read a libpff property, treating an unreadable value as absent."""
    try:
        return getattr(item, attribute, None)
    except OSError as exc:
        logger.debug("pff_property_unreadable", attribute=attribute, error=str(exc))
        return None


def _decode(value: bytes | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace").rstrip("\x00")
    return value


def _utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


def _parse_headers(raw: str | None) -> Message | None:
    if not raw:
        return None
    return email.parser.HeaderParser().parsestr(raw)


def _importance(headers: Message | None) -> Importance:
    if headers is None:
        return Importance.NORMAL
    value = (headers.get("Importance") or "").strip().lower()
    if value in ("high", "low"):
        return Importance(value)
    priority = (headers.get("X-Priority") or "").strip()[:1]
    if priority in ("1", "2"):
        return Importance.HIGH
    if priority in ("4", "5"):
        return Importance.LOW
    return Importance.NORMAL


class PffAttachment(AttachmentHandle):
    def __init__(self, item: Any) -> None:
        self._item = item

    def summarize(self) -> AttachmentSummary:
        name = _optional(self._item, "name")
        return AttachmentSummary(
            filename=name,
            mime_type=mimetypes.guess_type(name)[0] if name else None,
            size=_optional(self._item, "size"),
            handle=self,
        )

    def load_detail(self) -> AttachmentDetail:
        summary = self.summarize()
        size = summary.size or 0
        return AttachmentDetail(
            filename=summary.filename,
            mime_type=summary.mime_type,
            size=summary.size,
            data=self._item.read_buffer(size) if size else None,
            handle=self,
        )


class PffMessage(MessageHandle):
    def __init__(self, item: Any) -> None:
        self._item = item

    def summarize(self) -> MessageSummary:
        item = self._item
        headers = _parse_headers(_optional(item, "transport_headers"))
        sender_name = _optional(item, "sender_name")
        sender_address = None
        if headers is not None and headers.get("From"):
            parsed_name, sender_address = email.utils.parseaddr(str(headers["From"]))
            sender_name = sender_name or parsed_name or None
            sender_address = sender_address or None

        return MessageSummary(
            fingerprint=int(item.identifier).to_bytes(8, "big"),
            subject=_optional(item, "subject"),
            sender_name=sender_name or None,
            sender_address=sender_address,
            date=_utc(
                _optional(item, "delivery_time")
                or _optional(item, "client_submit_time")
                or _optional(item, "creation_time")
            ),
            size=_optional(item, "size"),
            has_attachments=bool(_optional(item, "number_of_attachments")),
            handle=self,
        )

    def load_detail(self) -> MessageDetail:
        summary = self.summarize()
        raw_headers = _optional(self._item, "transport_headers")
        headers = _parse_headers(raw_headers)

        def header(name: str) -> str | None:
            if headers is None or headers.get(name) is None:
                return None
            return str(headers[name])

        return MessageDetail(
            fingerprint=summary.fingerprint,
            subject=summary.subject,
            sender_name=summary.sender_name,
            sender_address=summary.sender_address,
            date=summary.date,
            size=summary.size,
            has_attachments=summary.has_attachments,
            handle=self,
            to=header("To"),
            cc=header("Cc"),
            bcc=header("Bcc"),
            body_text=_decode(_optional(self._item, "plain_text_body")),
            body_html=_decode(_optional(self._item, "html_body")),
            transport_headers=raw_headers or None,
            internet_message_id=header("Message-ID"),
            importance=_importance(headers),
            flags=MessageFlags.HAS_ATTACHMENTS if summary.has_attachments else MessageFlags.NONE,
            attachments=tuple(
                PffAttachment(self._item.get_attachment(i)).summarize()
                for i in range(_optional(self._item, "number_of_attachments") or 0)
            ),
        )


class PffFolder(FolderHandle):
    def __init__(self, item: Any) -> None:
        self._item = item
        self._children: list[FolderHandle] | None = None

    @property
    def name(self) -> str | None:
        return _optional(self._item, "name") or None

    @property
    def item_count(self) -> int:
        return _optional(self._item, "number_of_sub_messages") or 0

    @property
    def children(self) -> list[FolderHandle]:
        # Cached so handle identity is stable across calls.
        if self._children is None:
            count = _optional(self._item, "number_of_sub_folders") or 0
            self._children = [PffFolder(self._item.get_sub_folder(i)) for i in range(count)]
        return self._children

    def list_messages(self) -> list[MessageSummary]:
        count = _optional(self._item, "number_of_sub_messages") or 0
        return [PffMessage(self._item.get_sub_message(i)).summarize() for i in range(count)]


class PffArchive(ArchiveHandle):
    def __init__(self, file: Any) -> None:
        self._file = file
        self._root: PffFolder | None = None

    @property
    def root_folder(self) -> FolderHandle | None:
        if self._root is None:
            item = self._file.get_root_folder()
            self._root = PffFolder(item) if item is not None else None
        return self._root

    @property
    def user_root_folder(self) -> FolderHandle | None:
        root = self.root_folder
        if root is None:
            return None
        for child in root.children:
            if (child.name or "").strip().lower() in _USER_ROOT_NAMES:
                return child
        return root

    def close(self) -> None:
        self._file.close()


class PffBackend(ArchiveBackend):
    def open(self, path: Path) -> ArchiveHandle:
        pff_file = pypff.file()
        pff_file.open(str(path))
        logger.debug("pff_file_opened", path=str(path))
        return PffArchive(pff_file)

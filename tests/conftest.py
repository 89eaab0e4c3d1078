"""Shared test fixtures for the pst_viewer test suite.

The fakes below implement the backend ABCs in memory and count how often
the expensive operations are called, so tests can assert on caching and
short-circuiting behaviour.
"""

from __future__ import annotations

import itertools
from datetime import UTC, datetime
from pathlib import Path

import pytest

from pst_viewer.backend import ArchiveBackend, ArchiveHandle, AttachmentHandle, FolderHandle, MessageHandle
from pst_viewer.config import AttachmentConfig, CacheConfig, SearchConfig
from pst_viewer.models import AttachmentDetail, AttachmentSummary, MessageDetail, MessageSummary

_fingerprints = itertools.count(1)


class FakeAttachment(AttachmentHandle):
    def __init__(self, filename: str | None, data: bytes | None) -> None:
        self.filename = filename
        self.data = data
        self.load_count = 0

    def summary(self) -> AttachmentSummary:
        return AttachmentSummary(
            filename=self.filename,
            size=len(self.data) if self.data is not None else None,
            handle=self,
        )

    def load_detail(self) -> AttachmentDetail:
        self.load_count += 1
        return AttachmentDetail(
            filename=self.filename,
            size=len(self.data) if self.data is not None else None,
            data=self.data,
            handle=self,
        )


class FakeMessage(MessageHandle):
    def __init__(
        self,
        subject: str | None = "Hello",
        *,
        sender_name: str | None = "Alice Example",
        sender_address: str | None = "alice@example.com",
        date: datetime | None = datetime(2025, 6, 2, 12, 0, tzinfo=UTC),
        size: int | None = 1024,
        body_text: str | None = "Plain body",
        body_html: str | None = None,
        attachments: tuple[FakeAttachment, ...] = (),
        fail_on_load: Exception | None = None,
        **detail_fields,
    ) -> None:
        self.fingerprint = next(_fingerprints).to_bytes(8, "big")
        self.subject = subject
        self.sender_name = sender_name
        self.sender_address = sender_address
        self.date = date
        self.size = size
        self.body_text = body_text
        self.body_html = body_html
        self.attachments = attachments
        self.fail_on_load = fail_on_load
        self.detail_fields = detail_fields
        self.load_count = 0

    def summary(self) -> MessageSummary:
        return MessageSummary(
            fingerprint=self.fingerprint,
            subject=self.subject,
            sender_name=self.sender_name,
            sender_address=self.sender_address,
            date=self.date,
            size=self.size,
            has_attachments=bool(self.attachments),
            handle=self,
        )

    def load_detail(self) -> MessageDetail:
        self.load_count += 1
        if self.fail_on_load is not None:
            raise self.fail_on_load
        return MessageDetail(
            fingerprint=self.fingerprint,
            subject=self.subject,
            sender_name=self.sender_name,
            sender_address=self.sender_address,
            date=self.date,
            size=self.size,
            has_attachments=bool(self.attachments),
            handle=self,
            body_text=self.body_text,
            body_html=self.body_html,
            attachments=tuple(a.summary() for a in self.attachments),
            **self.detail_fields,
        )


class FakeFolder(FolderHandle):
    def __init__(
        self,
        name: str | None,
        messages: list[FakeMessage] | None = None,
        children: list[FakeFolder] | None = None,
    ) -> None:
        self._name = name
        self.messages = messages or []
        self._children = children or []
        self.list_count = 0

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def item_count(self) -> int:
        return len(self.messages)

    @property
    def children(self) -> list[FolderHandle]:
        return list(self._children)

    def list_messages(self) -> list[MessageSummary]:
        self.list_count += 1
        return [m.summary() for m in self.messages]


class FakeArchive(ArchiveHandle):
    def __init__(self, root: FakeFolder | None, user_root: FakeFolder | None = None) -> None:
        self._root = root
        self._user_root = user_root
        self.closed = False

    @property
    def root_folder(self) -> FolderHandle | None:
        return self._root

    @property
    def user_root_folder(self) -> FolderHandle | None:
        return self._user_root or self._root

    def close(self) -> None:
        self.closed = True


class FakeBackend(ArchiveBackend):
    """Returns the prepared archives in turn; raises *error* if set."""

    def __init__(self, *archives: FakeArchive, error: Exception | None = None) -> None:
        self._archives = list(archives)
        self.error = error
        self.opened: list[Path] = []

    def open(self, path: Path) -> ArchiveHandle:
        if self.error is not None:
            raise self.error
        self.opened.append(path)
        return self._archives.pop(0)


# ------------------------------------------------------------------
# Factories
# ------------------------------------------------------------------


@pytest.fixture
def make_message():
    """Factory for in-memory messages; keyword arguments override defaults."""
    return FakeMessage


@pytest.fixture
def make_attachment():
    return FakeAttachment


@pytest.fixture
def make_folder():
    return FakeFolder


@pytest.fixture
def make_archive():
    return FakeArchive


@pytest.fixture
def make_backend():
    return FakeBackend


@pytest.fixture
def detail_factory():
    """Factory for standalone MessageDetail values used by the encoders."""

    def _make(**overrides) -> MessageDetail:
        defaults = dict(
            fingerprint=b"\x00" * 8,
            subject="Quarterly report",
            sender_name="Alice Example",
            sender_address="alice@example.com",
            date=datetime(2025, 6, 2, 12, 0, tzinfo=UTC),
            to="bob@example.com",
            body_text="Hello Bob",
        )
        defaults.update(overrides)
        return MessageDetail(**defaults)

    return _make


# ------------------------------------------------------------------
# A small mailbox
# ------------------------------------------------------------------


@pytest.fixture
def mailbox() -> dict[str, FakeFolder]:
    """Root > Top of Personal Folders > (Inbox > Projects, Sent Items).

    Messages are spread so that pre-order traversal yields
    inbox-1, inbox-2, projects-1, sent-1.
    """
    projects = FakeFolder("Projects", [
        FakeMessage("Project kickoff", sender_name="Carol", sender_address="carol@example.com",
                    body_text="The budget is attached."),
    ])
    inbox = FakeFolder("Inbox", [
        FakeMessage("Lunch on Friday?", sender_name="Bob", sender_address="bob@example.com",
                    date=datetime(2025, 3, 1, 9, 30, tzinfo=UTC), body_text="Pizza or tacos"),
        FakeMessage("Invoice 2025-04", sender_name=None, sender_address="billing@vendor.test",
                    date=datetime(2025, 4, 15, 8, 0, tzinfo=UTC),
                    body_text="Please find the BUDGET figures below.",
                    attachments=(FakeAttachment("invoice.pdf", b"%PDF-1.4"),)),
    ], [projects])
    sent = FakeFolder("Sent Items", [
        FakeMessage("Re: Lunch on Friday?", sender_name="Alice Example",
                    date=datetime(2025, 3, 1, 10, 0, tzinfo=UTC), body_text="Tacos!"),
    ])
    top = FakeFolder("Top of Personal Folders", children=[inbox, sent])
    root = FakeFolder(None, children=[top])
    return {"root": root, "top": top, "inbox": inbox, "projects": projects, "sent": sent}


@pytest.fixture
def archive_file(tmp_path: Path) -> Path:
    path = tmp_path / "mailbox.pst"
    path.write_bytes(b"!BDN")
    return path


# ------------------------------------------------------------------
# Config
# ------------------------------------------------------------------


@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig(max_entries=50)


@pytest.fixture
def search_config() -> SearchConfig:
    return SearchConfig(max_results=10_000)


@pytest.fixture
def attachment_config(tmp_path: Path) -> AttachmentConfig:
    return AttachmentConfig(temp_dir=tmp_path / "transient", stale_max_age_seconds=3600)

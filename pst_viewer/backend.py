"""Archive parser contract: the ABCs an archive backend must implement.

Every method here is synchronous and the objects are *not* safe for
concurrent use.  Only :class:`pst_viewer.store.ArchiveStore` calls them,
and only from its single worker thread.
"""

from __future__ import annotations

import abc
from pathlib import Path

from .models import AttachmentDetail, MessageDetail, MessageSummary


class ArchiveBackend(abc.ABC):
    """Factory that opens archive files."""

    @abc.abstractmethod
    def open(self, path: Path) -> ArchiveHandle:
        """Open and parse the container at *path*.

        Raise any exception if the file is not a readable archive; the
        store wraps it in :class:`~pst_viewer.errors.InvalidArchiveError`.
        """
        ...


class ArchiveHandle(abc.ABC):
    """An opened archive container."""

    @property
    @abc.abstractmethod
    def root_folder(self) -> FolderHandle | None:
        """The top-level folder, or ``None`` if the tree cannot be resolved."""
        ...

    @property
    def user_root_folder(self) -> FolderHandle | None:
        """The user-visible subtree (e.g. "Top of Personal Folders").

        Override when the format distinguishes it from internal system
        folders.  Defaults to :attr:`root_folder`.
        """
        return self.root_folder

    def close(self) -> None:
        """Release the underlying file.  The default does nothing."""


class FolderHandle(abc.ABC):
    @property
    @abc.abstractmethod
    def name(self) -> str | None: ...

    @property
    @abc.abstractmethod
    def item_count(self) -> int: ...

    @property
    @abc.abstractmethod
    def children(self) -> list[FolderHandle]:
        """Child folders in archive order.  Resolving them may be costly."""
        ...

    @abc.abstractmethod
    def list_messages(self) -> list[MessageSummary]:
        """Return summaries (with :class:`MessageHandle` handles) in archive order."""
        ...


class MessageHandle(abc.ABC):
    @abc.abstractmethod
    def load_detail(self) -> MessageDetail:
        """Perform the expensive full load of a message."""
        ...


class AttachmentHandle(abc.ABC):
    @abc.abstractmethod
    def load_detail(self) -> AttachmentDetail:
        """Read the attachment payload."""
        ...

"""Exception hierarchy for archive access, search, export and attachments."""

from __future__ import annotations


class ViewerError(Exception):
    """Base class for every error surfaced to callers of ``pst_viewer``."""


class ArchiveNotFoundError(ViewerError):
    """The archive path does not resolve to a file."""

    def __init__(self, path: object) -> None:
        super().__init__(f"The selected file could not be found: {path}")
        self.path = path


class InvalidArchiveError(ViewerError):
    """The container could not be parsed as an Outlook data file."""

    def __init__(self, underlying: BaseException) -> None:
        super().__init__(f"Invalid Outlook data file: {underlying}")
        self.underlying = underlying


class ParseError(ViewerError):
    """A folder, message or attachment could not be read."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Error reading file: {detail}")
        self.detail = detail


class EncodeError(ViewerError):
    """A message could not be serialised to an export format."""


class ExportError(ViewerError):
    """Writing an exported message or attachment to disk failed."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Export failed: {detail}")
        self.detail = detail


class AttachmentError(ViewerError):
    """An attachment could not be saved or opened."""


class NoDataError(AttachmentError):
    def __init__(self) -> None:
        super().__init__("No data available for this attachment.")


class NoApplicationAvailableError(AttachmentError):
    def __init__(self, filename: str) -> None:
        super().__init__(f'No application available to open "{filename}".')
        self.filename = filename


class OperationCancelled(ViewerError):
    """A cooperative cancellation request was observed."""


class SearchCancelled(OperationCancelled):
    def __init__(self) -> None:
        super().__init__("Search was cancelled.")

"""Read-only access to Outlook PST/OST archives.

Public API re-exported here for convenience::

    from pst_viewer import ArchiveStore, SearchEngine, MessageExporter
"""

from .attachments import AttachmentMaterializer
from .backend import ArchiveBackend, ArchiveHandle, AttachmentHandle, FolderHandle, MessageHandle
from .batch import BatchExporter, BatchExportReport
from .cache import DetailCache
from .config import AttachmentConfig, CacheConfig, LoggingConfig, SearchConfig, ViewerConfig
from .errors import (
    ArchiveNotFoundError,
    AttachmentError,
    EncodeError,
    ExportError,
    InvalidArchiveError,
    NoApplicationAvailableError,
    NoDataError,
    OperationCancelled,
    ParseError,
    SearchCancelled,
    ViewerError,
)
from .export import MessageExporter, build_eml, build_txt, suggested_filename
from .logging import setup_logging
from .models import (
    Archive,
    AttachmentDetail,
    AttachmentSummary,
    ExportFormat,
    Folder,
    Importance,
    MessageDetail,
    MessageFlags,
    MessageSummary,
    SearchFilters,
)
from .search import CancellationToken, SearchEngine, SearchSession
from .sorting import SortOrder, sort_messages
from .store import ArchiveStore

__all__ = [
    "Archive",
    "ArchiveBackend",
    "ArchiveHandle",
    "ArchiveNotFoundError",
    "ArchiveStore",
    "AttachmentConfig",
    "AttachmentDetail",
    "AttachmentError",
    "AttachmentHandle",
    "AttachmentMaterializer",
    "AttachmentSummary",
    "BatchExportReport",
    "BatchExporter",
    "CacheConfig",
    "CancellationToken",
    "DetailCache",
    "EncodeError",
    "ExportError",
    "ExportFormat",
    "Folder",
    "FolderHandle",
    "Importance",
    "InvalidArchiveError",
    "LoggingConfig",
    "MessageDetail",
    "MessageExporter",
    "MessageFlags",
    "MessageHandle",
    "MessageSummary",
    "NoApplicationAvailableError",
    "NoDataError",
    "OperationCancelled",
    "ParseError",
    "SearchCancelled",
    "SearchConfig",
    "SearchEngine",
    "SearchFilters",
    "SearchSession",
    "SortOrder",
    "ViewerConfig",
    "ViewerError",
    "build_eml",
    "build_txt",
    "setup_logging",
    "sort_messages",
    "suggested_filename",
]

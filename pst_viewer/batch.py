"""Sequential export of many messages into one directory."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from .errors import ViewerError
from .export import MessageExporter, suggested_filename
from .models import ExportFormat, MessageSummary
from .search import CancellationToken
from .store import ArchiveStore

logger = structlog.get_logger()

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class BatchFailure:
    index: int
    subject: str | None
    error: str


@dataclass
class BatchExportReport:
    total: int
    exported: list[Path] = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    def summary(self) -> str:
        text = f"{len(self.exported)} of {self.total} email(s) exported"
        if self.failures:
            text += f", {self.failed_count} email(s) failed to export"
        if self.cancelled:
            text += " (cancelled)"
        return text + "."


class BatchExporter:
    """Exports messages one at a time so progress and cancellation are well defined.

    A failing item is recorded and skipped; cancellation stops before the
    next item and leaves the already-exported prefix on disk.
    """

    def __init__(self, store: ArchiveStore, exporter: MessageExporter | None = None) -> None:
        self._store = store
        self._exporter = exporter or MessageExporter()

    async def export_messages(
        self,
        messages: Sequence[MessageSummary],
        directory: str | Path,
        fmt: ExportFormat,
        *,
        cancel: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> BatchExportReport:
        directory = Path(directory)
        report = BatchExportReport(total=len(messages))

        for index, message in enumerate(messages, start=1):
            if cancel is not None and cancel.cancelled:
                report.cancelled = True
                logger.info("batch_export_cancelled", exported=len(report.exported))
                break

            try:
                detail = await self._store.get_detail(message)
                path = directory / batch_filename(detail, fmt, index)
                report.exported.append(
                    await asyncio.to_thread(self._exporter.export_message, detail, path, fmt)
                )
            except ViewerError as exc:
                report.failures.append(BatchFailure(index, message.subject, str(exc)))
                logger.warning(
                    "batch_export_item_failed",
                    index=index,
                    subject=message.subject,
                    error=str(exc),
                )

            if progress is not None:
                progress(index, report.total)

        logger.info(
            "batch_export_completed",
            exported=len(report.exported),
            failed=report.failed_count,
            cancelled=report.cancelled,
        )
        return report


def batch_filename(message: MessageSummary, fmt: ExportFormat, index: int) -> str:
    """Suggested file name with a 1-based index appended to avoid collisions."""
    name = suggested_filename(message, fmt)
    stem = name[: -(len(fmt.extension) + 1)]
    return f"{stem}_{index}.{fmt.extension}"

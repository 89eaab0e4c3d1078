"""Render loaded messages as EML (MIME) or plain-text files.

The encoders are pure functions of a :class:`MessageDetail`; they never
touch the archive.  The caller loads the detail first (normally via
:meth:`ArchiveStore.get_detail`).

EML output uses CRLF line endings, UTF-8 throughout and quoted-printable
transfer encoding for every body part.  When the message carries its
original transport headers they are reused verbatim, except that the
``Content-Type`` (and ``Content-Transfer-Encoding``) are rewritten to
describe the body actually emitted.
"""

from __future__ import annotations

import email.utils
import os
import re
import string
import tempfile
import uuid
from datetime import datetime
from pathlib import Path

import structlog

from .errors import EncodeError, ExportError
from .models import AttachmentDetail, ExportFormat, MessageDetail, MessageSummary, as_utc

logger = structlog.get_logger()

CRLF = "\r\n"

_Q_LITERAL_BYTES = frozenset((string.ascii_letters + string.digits).encode("ascii"))

_MAX_FILENAME_STEM = 100
_UNSAFE_FILENAME_CHARS = re.compile(r'[/\\:*?"<>|]')

_HTML_BREAKS = re.compile(r"<br\s*/?>|</p>|</div>|</tr>|</li>", re.IGNORECASE)
_HTML_TAGS = re.compile(r"<[^>]+>")
# &amp; last so that "&amp;lt;" decodes to "&lt;" rather than "<".
_HTML_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&nbsp;", " "),
    ("&amp;", "&"),
)


# ------------------------------------------------------------------
# Quoted-printable
# ------------------------------------------------------------------


class _QuotedPrintableEncoder:
    """Byte-at-a-time quoted-printable encoder.

    A space or tab is held back until the next byte is known, because
    whitespace right before a line break must be escaped.
    """

    def __init__(self) -> None:
        self._out: list[str] = []
        self._line_len = 0
        self._pending_ws: int | None = None

    def feed(self, byte: int) -> None:
        if byte in (0x0D, 0x0A):
            if self._pending_ws is not None:
                self._emit_escaped(self._pending_ws)
                self._pending_ws = None
            self._out.append(chr(byte))
            self._line_len = 0
        elif byte in (0x20, 0x09):
            if self._pending_ws is not None:
                self._emit_literal(self._pending_ws)
            self._pending_ws = byte
        else:
            if self._pending_ws is not None:
                self._emit_literal(self._pending_ws)
                self._pending_ws = None
            if 0x20 <= byte <= 0x7E and byte != 0x3D:
                self._emit_literal(byte)
            else:
                self._emit_escaped(byte)

    def finish(self) -> str:
        if self._pending_ws is not None:
            self._emit_escaped(self._pending_ws)
            self._pending_ws = None
        return "".join(self._out)

    def _emit_literal(self, byte: int) -> None:
        if self._line_len >= 75:
            self._soft_break()
        self._out.append(chr(byte))
        self._line_len += 1

    def _emit_escaped(self, byte: int) -> None:
        if self._line_len + 3 > 76:
            self._soft_break()
        self._out.append(f"={byte:02X}")
        self._line_len += 3

    def _soft_break(self) -> None:
        self._out.append("=" + CRLF)
        self._line_len = 0


def quoted_printable_encode(text: str) -> str:
    """Quoted-printable encode the UTF-8 bytes of *text*.

    CR and LF pass through untouched and reset the line length; soft
    breaks keep every encoded line within 76 columns.
    """
    encoder = _QuotedPrintableEncoder()
    for byte in text.encode("utf-8"):
        encoder.feed(byte)
    return encoder.finish()


# ------------------------------------------------------------------
# Header helpers
# ------------------------------------------------------------------


def encode_header(value: str) -> str:
    """RFC 2047 Q-encode *value* if it contains any non-ASCII character."""
    if value.isascii():
        return value
    encoded: list[str] = []
    for byte in value.encode("utf-8"):
        if byte == 0x20:
            encoded.append("_")
        elif byte in _Q_LITERAL_BYTES:
            encoded.append(chr(byte))
        else:
            encoded.append(f"={byte:02X}")
    return f"=?utf-8?Q?{''.join(encoded)}?="


def rfc2822_date(value: datetime) -> str:
    """Format like ``Mon, 02 Jun 2025 12:00:00 +0000``; naive values are UTC."""
    if value.tzinfo is None:
        value = as_utc(value)
    return email.utils.format_datetime(value)


def long_date(value: datetime) -> str:
    """Human-readable date, e.g. ``Monday, June 2, 2025 at 12:00:00 PM UTC``."""
    if value.tzinfo is None:
        value = as_utc(value)
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    zone = value.tzname() or "UTC"
    return (
        f"{value:%A}, {value:%B} {value.day}, {value.year} "
        f"at {hour}:{value:%M:%S} {meridiem} {zone}"
    )


def format_sender(message: MessageSummary) -> str | None:
    if message.sender_name and message.sender_address:
        return f"{message.sender_name} <{message.sender_address}>"
    return message.sender_name or message.sender_address


def set_header(block: str, name: str, value: str | None) -> str:
    """Replace, insert or (with ``value=None``) remove a header in *block*.

    *block* is a CRLF header block terminated by a blank line.  An
    existing header (matched case-insensitively, together with its folded
    continuation lines) is replaced in place; otherwise the new line goes
    immediately before the blank-line separator.
    """
    prefix = name.lower() + ":"
    result: list[str] = []
    found = False
    skipping_continuation = False

    for line in block.split(CRLF):
        if skipping_continuation:
            if line.startswith((" ", "\t")):
                continue
            skipping_continuation = False
        if line.lower().startswith(prefix):
            skipping_continuation = True
            if value is not None and not found:
                result.append(f"{name}: {value}")
            found = True
            continue
        result.append(line)

    output = CRLF.join(result)
    if found or value is None:
        return output

    new_line = f"{name}: {value}{CRLF}"
    separator = output.find(CRLF + CRLF)
    if separator == -1:
        return output + new_line
    insert_at = separator + len(CRLF)
    return output[:insert_at] + new_line + output[insert_at:]


def replace_content_type(block: str, content_type: str) -> str:
    return set_header(block, "Content-Type", content_type)


def _normalize_raw_headers(headers: str) -> str:
    """Convert raw transport headers to CRLF and end them with one blank line."""
    lines = headers.replace(CRLF, "\n").replace("\r", "\n").split("\n")
    while lines and not lines[-1].strip():
        lines.pop()
    return CRLF.join(lines) + CRLF + CRLF


def _synthesize_headers(message: MessageDetail) -> str:
    lines = ["MIME-Version: 1.0"]

    sender = format_sender(message)
    if sender:
        lines.append(f"From: {encode_header(sender)}")
    if message.to is not None:
        lines.append(f"To: {encode_header(message.to)}")
    if message.cc:
        lines.append(f"Cc: {encode_header(message.cc)}")
    if message.bcc:
        lines.append(f"Bcc: {encode_header(message.bcc)}")
    if message.subject is not None:
        lines.append(f"Subject: {encode_header(message.subject)}")
    if message.date is not None:
        lines.append(f"Date: {rfc2822_date(message.date)}")
    if message.internet_message_id:
        lines.append(f"Message-ID: {message.internet_message_id}")
    lines.append('Content-Type: text/plain; charset="utf-8"')

    return CRLF.join(lines) + CRLF + CRLF


def build_header_block(message: MessageDetail) -> str:
    if message.transport_headers and message.transport_headers.strip():
        return _normalize_raw_headers(message.transport_headers)
    return _synthesize_headers(message)


def generate_boundary() -> str:
    return f"----=_Part_{uuid.uuid4().hex}"


# ------------------------------------------------------------------
# EML / TXT builders
# ------------------------------------------------------------------


def _single_part(block: str, content_type: str, body: str) -> str:
    block = replace_content_type(block, content_type)
    block = set_header(block, "Content-Transfer-Encoding", "quoted-printable")
    return block + quoted_printable_encode(body) + CRLF


def _multipart_alternative(block: str, text: str, html: str) -> str:
    boundary = generate_boundary()
    block = replace_content_type(block, f'multipart/alternative; boundary="{boundary}"')
    block = set_header(block, "Content-Transfer-Encoding", None)

    parts = [block]
    for subtype, content in (("plain", text), ("html", html)):
        parts.append(f"--{boundary}{CRLF}")
        parts.append(f'Content-Type: text/{subtype}; charset="utf-8"{CRLF}')
        parts.append(f"Content-Transfer-Encoding: quoted-printable{CRLF}{CRLF}")
        parts.append(quoted_printable_encode(content))
        parts.append(CRLF + CRLF)
    parts.append(f"--{boundary}--{CRLF}")
    return "".join(parts)


def build_eml(message: MessageDetail) -> bytes:
    """Render *message* as RFC 5322 / MIME bytes."""
    text = message.body_text or None
    html = message.body_html or None

    try:
        block = build_header_block(message)
        if text and html:
            output = _multipart_alternative(block, text, html)
        elif html:
            output = _single_part(block, 'text/html; charset="utf-8"', html)
        elif text:
            output = _single_part(block, 'text/plain; charset="utf-8"', text)
        else:
            output = block
        return output.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise EncodeError(f"Failed to encode email as UTF-8: {exc}") from exc


def strip_html(html: str) -> str:
    """Very small HTML-to-text conversion for plain-text export."""
    text = _HTML_BREAKS.sub("\n", html)
    text = _HTML_TAGS.sub("", text)
    for entity, char in _HTML_ENTITIES:
        text = text.replace(entity, char)
    return text


def build_txt(message: MessageDetail) -> bytes:
    """Render *message* as a labelled plain-text document (LF line endings)."""
    lines: list[str] = []
    if message.subject is not None:
        lines.append(f"Subject: {message.subject}")
    sender = format_sender(message)
    if sender:
        lines.append(f"From: {sender}")
    if message.to is not None:
        lines.append(f"To: {message.to}")
    if message.cc:
        lines.append(f"Cc: {message.cc}")
    if message.bcc:
        lines.append(f"Bcc: {message.bcc}")
    if message.date is not None:
        lines.append(f"Date: {long_date(message.date)}")

    output = "\n".join(lines) + "\n" if lines else ""
    output += "\n"

    if message.body_text:
        output += message.body_text
    elif message.body_html:
        output += strip_html(message.body_html)

    output += "\n"

    try:
        return output.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise EncodeError(f"Failed to encode email as UTF-8: {exc}") from exc


def suggested_filename(message: MessageSummary, fmt: ExportFormat) -> str:
    """File name derived from the subject, safe on every common filesystem."""
    stem = _UNSAFE_FILENAME_CHARS.sub("_", message.subject or "Untitled")
    return f"{stem[:_MAX_FILENAME_STEM]}.{fmt.extension}"


def render(message: MessageDetail, fmt: ExportFormat) -> bytes:
    if fmt is ExportFormat.EML:
        return build_eml(message)
    return build_txt(message)


# ------------------------------------------------------------------
# Writing to disk
# ------------------------------------------------------------------


def _new_file_mode(path: Path) -> int:
    """Mode for *path*: the existing file's, else 0o666 filtered by the umask."""
    if path.exists():
        return path.stat().st_mode & 0o7777
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def write_atomic(path: Path, data: bytes) -> None:
    """Write *data* to a temp file beside *path* and rename it into place.

    The result gets the permissions a plain ``open(path, "wb")`` would
    give it, not the private mode of the temp file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = _new_file_mode(path)
    with tempfile.NamedTemporaryFile("wb", dir=str(path.parent), delete=False) as handle:
        temp_path = Path(handle.name)
    try:
        temp_path.write_bytes(data)
        os.chmod(temp_path, mode)
        temp_path.replace(path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise


def set_file_timestamps(path: Path, date: datetime | None) -> None:
    """Best-effort: set access/modification time to *date*."""
    if date is None:
        return
    timestamp = as_utc(date).timestamp()
    try:
        os.utime(path, (timestamp, timestamp))
    except (OSError, OverflowError, ValueError) as exc:
        logger.debug("file_timestamp_not_set", path=str(path), error=str(exc))


class MessageExporter:
    """Writes rendered messages and raw attachment payloads to disk."""

    def export_message(self, message: MessageDetail, path: str | Path, fmt: ExportFormat) -> Path:
        path = Path(path)
        data = render(message, fmt)
        try:
            write_atomic(path, data)
        except OSError as exc:
            raise ExportError(str(exc)) from exc
        set_file_timestamps(path, message.date)
        logger.info("message_exported", path=str(path), format=fmt.value, size=len(data))
        return path

    def save_attachment(self, attachment: AttachmentDetail, path: str | Path) -> Path:
        path = Path(path)
        if attachment.data is None:
            raise ExportError("Attachment has no data.")
        try:
            write_atomic(path, attachment.data)
        except OSError as exc:
            raise ExportError(str(exc)) from exc
        logger.info("attachment_saved", path=str(path), size=len(attachment.data))
        return path

"""Outbound message construction.

What:
  Build complete RFC 5322 messages from a :class:`ComposeInput`: ordered
  headers, a quoted-printable text body, an optional HTML alternative and
  base64 attachments. Also recover recipients from a stored draft and strip
  private headers before transmission.

Why:
  Drafts and sent mail must carry byte-identical structure whatever the entry
  point (new message, reply, saved draft). Producing the wire form directly
  keeps header order and line wrapping deterministic.

How:
  Headers are emitted in a fixed order with CRLF endings, skipping empty
  values and RFC 2047 encoding non-ASCII text. The body is a single part when
  there is nothing to attach, ``multipart/alternative`` for plain plus HTML,
  and ``multipart/mixed`` with a leading text part when files are attached.

Interfaces:
  :class:`ComposeInput`, :func:`build_message`, :func:`extract_recipients`,
  :func:`strip_private_headers`, :data:`BCC_HEADER`.

Invariants & Safety:
  - ``From`` is mandatory; validation happens before any file or network IO.
  - Base64 lines are at most 76 characters and end with CRLF.
  - :data:`BCC_HEADER` is only written when explicitly requested (drafts) and
    is removed by :func:`strip_private_headers` before sending.
"""
from __future__ import annotations

import base64
import mimetypes
import quopri
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from email.header import Header
from email.utils import encode_rfc2231, formataddr, format_datetime, formatdate, getaddresses, make_msgid, parseaddr
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from ..errors import ValidationError
from ..utils import mime
from .html import strip_html_tags


BCC_HEADER = "X-Mailcli-Bcc"
CRLF = "\r\n"
BASE64_LINE_LENGTH = 76
DEFAULT_ATTACHMENT_TYPE = "application/octet-stream"
_PRIVATE_HEADERS = (b"bcc", BCC_HEADER.lower().encode("ascii"))


@dataclass
class ComposeInput:
    """Structured description of one outbound message.

    Attributes:
      from_: Sender address; required.
      to, cc, bcc: Recipient addresses.
      reply_to: Optional ``Reply-To`` value.
      subject: Subject line.
      body: Plain-text body.
      html_body: Optional HTML body.
      in_reply_to, references: Threading headers for replies.
      attachments: Paths of files to attach.
      store_bcc_header: Persist ``bcc`` in :data:`BCC_HEADER` (drafts only).
    """

    from_: str
    to: List[str] = field(default_factory=list)
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    reply_to: str = ""
    subject: str = ""
    body: str = ""
    html_body: str = ""
    in_reply_to: str = ""
    references: str = ""
    attachments: List[Path] = field(default_factory=list)
    store_bcc_header: bool = False


def _clean(value: str) -> str:
    return value.replace("\r", " ").replace("\n", " ").strip()


def _is_ascii(value: str) -> bool:
    return all(ord(char) < 128 for char in value)


def _encode_text(value: str) -> str:
    value = _clean(value)
    if _is_ascii(value):
        return value
    return Header(value, "utf-8").encode(linesep=CRLF)


def _encode_address(value: str) -> str:
    value = _clean(value)
    if _is_ascii(value):
        return value
    name, address = parseaddr(value)
    if not address:
        return _encode_text(value)
    return formataddr((name, address), charset="utf-8")


def _address_header(addresses: Iterable[str]) -> str:
    return ", ".join(_encode_address(item) for item in addresses if item and item.strip())


def _quoted_printable(text: str) -> str:
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    encoded = quopri.encodestring(normalized.encode("utf-8")).decode("ascii")
    return encoded.replace("\n", CRLF)


def _wrapped_base64(data: bytes) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    lines = [encoded[index:index + BASE64_LINE_LENGTH] for index in range(0, len(encoded), BASE64_LINE_LENGTH)]
    return CRLF.join(lines)


def _param(name: str, value: str) -> str:
    if _is_ascii(value):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'{name}="{escaped}"'
    return f"{name}*={encode_rfc2231(value, 'utf-8')}"


def _text_part(subtype: str, text: str) -> List[str]:
    return [
        f'Content-Type: text/{subtype}; charset="utf-8"',
        "Content-Transfer-Encoding: quoted-printable",
        "",
        _quoted_printable(text),
    ]


def _attachment_part(path: Path, data: bytes) -> List[str]:
    filename = path.name
    content_type = mimetypes.guess_type(filename)[0] or DEFAULT_ATTACHMENT_TYPE
    return [
        f"Content-Type: {content_type}; {_param('name', filename)}",
        f"Content-Disposition: attachment; {_param('filename', filename)}",
        "Content-Transfer-Encoding: base64",
        "",
        _wrapped_base64(data),
    ]


def _multipart(subtype: str, boundary: str, parts: Sequence[List[str]]) -> List[str]:
    lines = [f'Content-Type: multipart/{subtype}; boundary="{boundary}"', ""]
    for part in parts:
        lines.append(f"--{boundary}")
        lines.extend(part)
    lines.append(f"--{boundary}--")
    return lines


def _read_attachments(paths: Sequence[Path]) -> List[Tuple[Path, bytes]]:
    loaded = []
    for raw_path in paths:
        path = Path(raw_path).expanduser()
        try:
            loaded.append((path, path.read_bytes()))
        except OSError as exc:
            raise ValidationError(f"cannot read attachment {path}: {exc}") from exc
    return loaded


def _new_boundary() -> str:
    return f"mailcli-{secrets.token_hex(12)}"


def build_message(
    compose: ComposeInput,
    *,
    now: Optional[datetime] = None,
    boundary: Optional[str] = None,
    message_id: Optional[str] = None,
) -> bytes:
    """Render ``compose`` as RFC 5322 bytes with CRLF line endings.

    What:
      Emit ``From``, ``To``, ``Cc``, ``Reply-To``, ``Subject``,
      ``In-Reply-To``, ``References``, the private Bcc header (when requested),
      ``Date``, ``Message-ID`` and ``MIME-Version`` followed by the body.

    Args:
      compose: Message description.
      now: Timestamp for the ``Date`` header; defaults to the current time.
      boundary: Multipart boundary; random when omitted.
      message_id: ``Message-ID`` value; generated from the sender domain when
        omitted.

    Returns:
      The complete message as ASCII bytes.

    Raises:
      ValidationError: If ``from_`` is empty or an attachment cannot be read.
    """

    sender = (compose.from_ or "").strip()
    if not sender:
        raise ValidationError("from address is required")
    attachments = _read_attachments(compose.attachments)

    if message_id is None:
        domain = parseaddr(sender)[1].rpartition("@")[2] or None
        message_id = make_msgid(domain=domain)

    headers: List[Tuple[str, str]] = [
        ("From", _encode_address(sender)),
        ("To", _address_header(compose.to)),
        ("Cc", _address_header(compose.cc)),
        ("Reply-To", _address_header([compose.reply_to])),
        ("Subject", _encode_text(compose.subject)),
        ("In-Reply-To", _clean(compose.in_reply_to)),
        ("References", _clean(compose.references)),
    ]
    if compose.store_bcc_header and compose.bcc:
        headers.append((BCC_HEADER, _address_header(compose.bcc)))
    headers.append(("Date", format_datetime(now) if now is not None else formatdate(localtime=True)))
    headers.append(("Message-ID", message_id))
    headers.append(("MIME-Version", "1.0"))

    lines = [f"{name}: {value}" for name, value in headers if value]

    plain = compose.body
    html_body = compose.html_body
    if attachments:
        if not plain and html_body:
            plain = strip_html_tags(html_body)
        parts = [_text_part("plain", plain)]
        parts.extend(_attachment_part(path, data) for path, data in attachments)
        lines.extend(_multipart("mixed", boundary or _new_boundary(), parts))
    elif html_body and plain:
        parts = [_text_part("plain", plain), _text_part("html", html_body)]
        lines.extend(_multipart("alternative", boundary or _new_boundary(), parts))
    elif html_body:
        lines.extend(_text_part("html", html_body))
    else:
        lines.extend(_text_part("plain", plain))

    return (CRLF.join(lines) + CRLF).encode("ascii")


def _dedupe(addresses: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for address in addresses:
        key = address.lower()
        if address and key not in seen:
            seen.add(key)
            result.append(address)
    return result


def extract_recipients(raw: bytes) -> List[str]:
    """Collect envelope recipients of a stored message or draft.

    Reads ``To``, ``Cc``, ``Bcc`` and :data:`BCC_HEADER`, returning bare
    addresses de-duplicated case-insensitively in header order.
    """

    message = mime.parse_message(raw)
    values: List[str] = []
    for name in ("To", "Cc", "Bcc"):
        values.extend(str(value) for value in message.get_all(name, []))
    addresses = [address.strip() for _, address in getaddresses(values)]
    for value in message.get_all(BCC_HEADER, []):
        for item in str(value).split(","):
            address = parseaddr(item.strip())[1].strip()
            if address:
                addresses.append(address)
    return _dedupe(address for address in addresses if address)


def strip_private_headers(raw: bytes) -> bytes:
    """Remove ``Bcc`` and :data:`BCC_HEADER` (with folded lines) from ``raw``."""

    for separator in (b"\r\n\r\n", b"\n\n"):
        head, found, body = raw.partition(separator)
        if found:
            break
    else:
        head, found, body = raw, b"", b""

    newline = b"\r\n" if separator == b"\r\n\r\n" else b"\n"
    kept: List[bytes] = []
    dropping = False
    for line in head.split(newline):
        if line[:1] in (b" ", b"\t"):
            if not dropping:
                kept.append(line)
            continue
        name = line.split(b":", 1)[0].strip().lower()
        dropping = name in _PRIVATE_HEADERS
        if not dropping:
            kept.append(line)
    return newline.join(kept) + found + body

"""MIME traversal helpers shared by message access, replies and attachments.

What:
  Turn raw RFC 5322 bytes into :class:`email.message.EmailMessage` objects and
  expose the few part-level queries the mail client needs: leaf parts, the
  first inline body of a given subtype, and attachment parts.

Why:
  Displaying a message, quoting it in a reply and extracting its attachments
  all walk the same tree. A single definition of "inline" versus "attachment"
  keeps the three consistent.

How:
  Use :class:`~email.parser.BytesParser` with ``policy.default`` and iterate
  ``message.walk()`` while skipping container parts. A part is an attachment
  when its ``Content-Disposition`` is ``attachment``; every other leaf is
  inline.

Interfaces:
  :func:`parse_message`, :func:`iter_leaf_parts`, :func:`is_attachment`,
  :func:`first_inline_text`, :func:`attachment_parts`, :func:`part_text`,
  :func:`part_bytes`.

Invariants & Safety:
  - Text decoding never raises: unknown charsets and invalid bytes degrade to
    UTF-8 with replacement characters.
  - Decoded text uses LF line endings whatever the source used.
"""
from __future__ import annotations

from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from typing import Iterator, List


def parse_message(raw: bytes) -> EmailMessage:
    """Parse raw message bytes with the modern ``email`` policy."""

    return BytesParser(policy=policy.default).parsebytes(raw)


def iter_leaf_parts(message: EmailMessage) -> Iterator[EmailMessage]:
    """Yield every non-multipart part of ``message`` in document order."""

    for part in message.walk():
        if part.is_multipart():
            continue
        yield part


def is_attachment(part: EmailMessage) -> bool:
    return part.get_content_disposition() == "attachment"


def part_text(part: EmailMessage) -> str:
    """Decode a text part with LF line endings.

    Falls back to lossy UTF-8 on charset problems.
    """

    try:
        content = part.get_content()
    except (LookupError, UnicodeDecodeError):
        content = part_bytes(part)
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    return str(content).replace("\r\n", "\n").replace("\r", "\n")


def part_bytes(part: EmailMessage) -> bytes:
    """Return the transfer-decoded payload of a leaf part."""

    payload = part.get_payload(decode=True)
    return payload if isinstance(payload, bytes) else b""


def first_inline_text(message: EmailMessage, subtype: str = "plain") -> str:
    """Return the first inline ``text/<subtype>`` body, or ``""`` if none."""

    wanted = f"text/{subtype}"
    for part in iter_leaf_parts(message):
        if is_attachment(part):
            continue
        if part.get_content_type() == wanted:
            return part_text(part)
    return ""


def attachment_parts(message: EmailMessage) -> List[EmailMessage]:
    """Return every attachment-disposition leaf part in document order."""

    return [part for part in iter_leaf_parts(message) if is_attachment(part)]

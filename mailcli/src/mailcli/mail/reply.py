"""Reply derivation: threading headers, recipients, subject and quoting.

What:
  Extract the facts a reply needs from a raw source message
  (:class:`ReplyInfo`) and derive the ``In-Reply-To``/``References`` chain,
  the reply and reply-all recipient sets, the ``Re:`` subject and quoted
  plain and HTML bodies.

Why:
  Replies must thread correctly in every client, must never be addressed to
  the person replying, and must not repeat recipients. Keeping these rules in
  pure functions makes them easy to verify without a server.

How:
  Headers are read with the :mod:`email` package; address lists are parsed
  with :func:`email.utils.getaddresses`, lower-cased and de-duplicated
  case-insensitively, falling back to a comma split when parsing yields
  nothing. Quoting prefixes source lines with ``"> "`` for text and wraps the
  source in a ``gmail_quote`` blockquote for HTML.

Interfaces:
  :class:`ReplyInfo`, :func:`extract_reply_info`, :func:`build_reply_headers`,
  :func:`build_reply_recipients`, :func:`build_reply_all_recipients`,
  :func:`derive_recipients`, :func:`reply_subject`, :func:`apply_quote`,
  :func:`parse_address_list`, :func:`strip_html_tags`.

Invariants & Safety:
  - Derived recipient lists never contain the replying identity.
  - Reply-all ``Cc`` never repeats an address already in ``To``.
  - :func:`reply_subject` is idempotent.
"""
from __future__ import annotations

import html
from dataclasses import dataclass
from email.utils import getaddresses, parseaddr
from typing import Iterable, List, Optional, Tuple

from ..utils import mime
from .html import escape_text_to_html, looks_like_html, strip_html_tags


QUOTE_HTML_TEMPLATE = (
    '<br><br><div class="gmail_quote"><div class="gmail_attr">On {date}, {sender} wrote:</div>'
    '<blockquote class="gmail_quote" style="margin:0 0 0 .8ex;border-left:1px #ccc solid;'
    'padding-left:1ex">{content}</blockquote></div>'
)
UNKNOWN_DATE = "an earlier date"

__all__ = [
    "ReplyInfo",
    "apply_quote",
    "build_reply_all_recipients",
    "build_reply_headers",
    "build_reply_recipients",
    "derive_recipients",
    "extract_reply_info",
    "parse_address_list",
    "reply_subject",
    "strip_html_tags",
]


@dataclass(frozen=True)
class ReplyInfo:
    """Facts extracted from the message being replied to.

    ``to`` and ``cc`` hold lower-case bare addresses; ``from_`` and
    ``reply_to`` keep the raw header text.
    """

    message_id: str = ""
    references: str = ""
    from_: str = ""
    reply_to: str = ""
    to: Tuple[str, ...] = ()
    cc: Tuple[str, ...] = ()
    date: str = ""
    subject: str = ""
    body: str = ""
    html_body: str = ""


def _dedupe(addresses: Iterable[str]) -> List[str]:
    seen = set()
    result: List[str] = []
    for address in addresses:
        key = address.lower()
        if address and key not in seen:
            seen.add(key)
            result.append(address)
    return result


def _fallback_addresses(value: str) -> List[str]:
    found: List[str] = []
    for token in value.split(","):
        token = token.strip()
        if "<" in token and ">" in token:
            inner = token[token.index("<") + 1:token.rindex(">")].strip()
            if inner:
                found.append(inner.lower())
        elif "@" in token:
            found.append(token.lower())
    return found


def parse_address_list(value: str) -> List[str]:
    """Return the lower-case bare addresses in a header value."""

    if not value or not value.strip():
        return []
    parsed = [
        address.strip().lower()
        for _, address in getaddresses([value])
        if address and "@" in address
    ]
    if not parsed:
        parsed = _fallback_addresses(value)
    return _dedupe(parsed)


def _header(message, name: str) -> str:
    value = message.get(name)
    return str(value).strip() if value is not None else ""


def extract_reply_info(raw: bytes, include_bodies: bool = False) -> ReplyInfo:
    """Parse ``raw`` into a :class:`ReplyInfo`.

    Bodies are only read when ``include_bodies`` is set. A ``text/plain``
    body that is really HTML markup is discarded.
    """

    message = mime.parse_message(raw)
    body = ""
    html_body = ""
    if include_bodies:
        body = mime.first_inline_text(message, "plain")
        html_body = mime.first_inline_text(message, "html")
        if looks_like_html(body):
            body = ""
    return ReplyInfo(
        message_id=_header(message, "Message-ID"),
        references=_header(message, "References"),
        from_=_header(message, "From"),
        reply_to=_header(message, "Reply-To"),
        to=tuple(parse_address_list(_header(message, "To"))),
        cc=tuple(parse_address_list(_header(message, "Cc"))),
        date=_header(message, "Date"),
        subject=_header(message, "Subject"),
        body=body,
        html_body=html_body,
    )


def build_reply_headers(info: ReplyInfo) -> Tuple[str, str]:
    """Return ``(in_reply_to, references)`` for a reply to ``info``."""

    message_id = info.message_id.strip()
    references = info.references.strip()
    if not message_id:
        return "", references
    if not references:
        return message_id, message_id
    if message_id not in references.split():
        references = f"{references} {message_id}"
    return message_id, references


def _normalize_self(self_address: str) -> str:
    address = parseaddr(self_address or "")[1] or (self_address or "")
    return address.strip().lower()


def _without(addresses: Iterable[str], excluded: Iterable[str]) -> List[str]:
    blocked = {item.lower() for item in excluded if item}
    return [address for address in addresses if address.lower() not in blocked]


def _reply_target(info: ReplyInfo) -> List[str]:
    return parse_address_list(info.reply_to or info.from_)


def build_reply_recipients(info: ReplyInfo, self_address: str) -> List[str]:
    """Address a direct reply: ``Reply-To`` or ``From``, minus the replier."""

    me = _normalize_self(self_address)
    return _dedupe(_without(_reply_target(info), [me]))


def build_reply_all_recipients(info: ReplyInfo, self_address: str) -> Tuple[List[str], List[str]]:
    """Address a reply-all and return ``(to, cc)``.

    ``to`` is the reply target plus the source ``To``; ``cc`` is the source
    ``Cc`` minus anything already in ``to``. The replier is removed from both.
    """

    me = _normalize_self(self_address)
    to = _dedupe(_without(_reply_target(info) + list(info.to), [me]))
    cc = _dedupe(_without(info.cc, [me]))
    cc = _without(cc, to)
    return to, cc


def derive_recipients(
    info: ReplyInfo,
    self_address: str,
    reply_all: bool = False,
) -> Tuple[List[str], List[str]]:
    """Return ``(to, cc)`` for a reply or reply-all."""

    if reply_all:
        return build_reply_all_recipients(info, self_address)
    return build_reply_recipients(info, self_address), []


def reply_subject(original: str) -> str:
    """Prefix ``Re: `` unless the subject already starts with it (any case)."""

    subject = (original or "").strip()
    if not subject:
        return ""
    if subject[:3].lower() == "re:":
        return subject
    return f"Re: {subject}"


def _attribution(from_: str, date: str) -> str:
    if date and from_:
        return f"On {date}, {from_} wrote:\n"
    if from_:
        return f"{from_} wrote:\n"
    return "Original message:\n"


def format_quoted_text(from_: str, date: str, body: str) -> str:
    """Render ``body`` as an attributed ``> `` quote block."""

    if not body:
        return ""
    quoted = "".join(f"> {line}\n" for line in body.split("\n"))
    return "\n\n" + _attribution(from_, date) + quoted


def format_quoted_html(from_: str, date: str, content: str) -> str:
    """Wrap ``content`` in an attributed HTML blockquote."""

    name, address = parseaddr(from_ or "")
    sender = name if (name and address) else from_
    return QUOTE_HTML_TEMPLATE.format(
        date=html.escape(date or UNKNOWN_DATE),
        sender=html.escape(sender or ""),
        content=content,
    )


def apply_quote(
    plain_body: str,
    html_body: str,
    quote: bool,
    info: Optional[ReplyInfo],
) -> Tuple[str, str]:
    """Append the quoted source to the reply bodies.

    Returns the bodies unchanged unless ``quote`` is set and the source had
    a plain or HTML body. The plain reply is quoted only from a plain source
    body; an HTML-only source quotes into the HTML reply alone.

    Returns:
      ``(plain, html)`` after quoting.
    """

    if not quote or info is None or (not info.body and not info.html_body):
        return plain_body, html_body

    out_plain = plain_body
    if info.body:
        out_plain = plain_body + format_quoted_text(info.from_, info.date, info.body)

    content = info.html_body or escape_text_to_html(info.body)
    if not content:
        return out_plain, html_body
    quote_html = format_quoted_html(info.from_, info.date, content)
    if not html_body.strip():
        return out_plain, escape_text_to_html(plain_body.strip()) + quote_html
    return out_plain, html_body + quote_html

"""Session-per-operation mail service.

What:
  Implement every mailbox operation of the client (paginated listing and
  search, thread listing, reading, raw fetch, delete, move, tag, draft append,
  status, mailbox management and attachment download) on top of
  :class:`~mailcli.imap.client.MailSession`.

Why:
  Each operation owns exactly one session that is opened, used synchronously
  and closed on every exit path. Concentrating that lifecycle here keeps the
  CLI free of IMAP details and makes error translation uniform.

How:
  :meth:`MailService._session` opens a session from the configured factory
  and translates ``imapclient`` and socket errors into
  :class:`~mailcli.errors.TransportError`. Listing sorts matching UIDs
  ascending, slices a newest-first window with
  :mod:`mailcli.imap.pagination`, streams the envelopes through
  :mod:`mailcli.imap.stream` and re-sorts the result by descending UID.

Interfaces:
  :class:`MailService`, :func:`format_addresses`, :func:`decode_header_text`.

Invariants & Safety:
  - Listing and reading select the mailbox read-only.
  - An empty window returns no summaries and issues no fetch.
  - Results are sorted strictly descending by UID regardless of the order in
    which the server delivered them.
"""
from __future__ import annotations

import contextlib
from email.errors import HeaderParseError
from email.header import decode_header, make_header
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from imapclient.exceptions import IMAPClientError

from ..errors import MessageNotFoundError, TransportError, ValidationError
from ..mail.attachments import save_attachments
from ..utils import mime
from ..utils.logging import get_logger
from .client import ImapConfig, MailboxInfo, MailSession
from .pagination import Page, paginate
from .search import build_search
from .stream import collect
from .thread import DEFAULT_CHARSET, ThreadNegotiator
from .types import ListResult, MailboxStatus, MessageDetail, MessageSummary, ThreadSummary


LOGGER = get_logger("mailcli.imap.service")

SUMMARY_ITEMS = ("ENVELOPE", "FLAGS", "RFC822.SIZE")
THREAD_ITEMS = ("ENVELOPE",)
RAW_ITEM = "BODY.PEEK[]"
RAW_KEY = b"BODY[]"

DELETED_FLAG = "\\Deleted"
DRAFT_FLAG = "\\Draft"
DEFAULT_MAILBOX = "INBOX"
DEFAULT_DRAFTS_MAILBOX = "Drafts"

SessionFactory = Callable[[], MailSession]


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def decode_header_text(value: Any) -> str:
    """Decode an RFC 2047 encoded header value into text."""

    text = _text(value)
    if "=?" not in text:
        return text
    try:
        return str(make_header(decode_header(text)))
    except (HeaderParseError, LookupError, UnicodeDecodeError):
        return text


def format_address(address: Any) -> str:
    """Render one envelope address as ``Name <mailbox@host>`` or the bare address."""

    mailbox = _text(getattr(address, "mailbox", None))
    host = _text(getattr(address, "host", None))
    if not mailbox:
        return ""
    email_address = f"{mailbox}@{host}" if host else mailbox
    name = decode_header_text(getattr(address, "name", None))
    if name:
        return f"{name} <{email_address}>"
    return email_address


def format_addresses(addresses: Optional[Sequence[Any]]) -> str:
    """Join envelope addresses with ``", "``, skipping empty entries."""

    rendered = [format_address(address) for address in addresses or ()]
    return ", ".join(item for item in rendered if item)


def _flags(values: Any) -> tuple:
    return tuple(_text(flag) for flag in values or ())


def _summary(uid: int, data: Dict[bytes, Any]) -> MessageSummary:
    envelope = data.get(b"ENVELOPE")
    return MessageSummary(
        uid=uid,
        subject=decode_header_text(getattr(envelope, "subject", None)),
        from_=format_addresses(getattr(envelope, "from_", None)),
        date=getattr(envelope, "date", None),
        size=int(data.get(b"RFC822.SIZE") or 0),
        flags=_flags(data.get(b"FLAGS")),
    )


class MailService:
    """Mailbox operations, each running inside its own session.

    Args:
      config: Resolved IMAP connection settings.
      drafts_mailbox: Mailbox receiving saved drafts.
      session_factory: Optional callable returning a fresh
        :class:`MailSession`; defaults to ``MailSession(config)``.
    """

    def __init__(
        self,
        config: ImapConfig,
        *,
        drafts_mailbox: str = DEFAULT_DRAFTS_MAILBOX,
        session_factory: Optional[SessionFactory] = None,
    ):
        self._config = config
        self.drafts_mailbox = drafts_mailbox or DEFAULT_DRAFTS_MAILBOX
        self._factory: SessionFactory = session_factory or (lambda: MailSession(config))

    @contextlib.contextmanager
    def _session(self, operation: str) -> Iterator[MailSession]:
        """Open a session for ``operation`` and translate protocol failures."""

        try:
            with self._factory() as session:
                yield session
        except (IMAPClientError, OSError) as exc:
            LOGGER.error("imap_operation_failed", operation=operation, error=str(exc))
            raise TransportError(f"{operation} failed: {exc}") from exc

    # -- Query engine -------------------------------------------------

    def list_messages(self, mailbox: str = DEFAULT_MAILBOX, page: int = 1, page_size: int = 20) -> ListResult:
        """Return the newest-first page of every message in ``mailbox``."""

        return self._query(mailbox, None, Page.of(page, page_size))

    def search_messages(
        self,
        mailbox: str,
        query: str,
        page: int = 1,
        page_size: int = 20,
    ) -> ListResult:
        """Return the newest-first page of messages matching ``query`` (``TEXT`` search)."""

        return self._query(mailbox, query, Page.of(page, page_size))

    def _query(self, mailbox: str, query: Optional[str], page: Page) -> ListResult:
        criteria = build_search(query)
        with self._session("list") as session:
            session.select(mailbox, readonly=True)
            uids = sorted(set(session.uid_search(criteria)))
            total = len(uids)
            subset = paginate(uids, page)
            if not subset:
                LOGGER.info("imap_list", mailbox=mailbox, total=total, page=page.number, fetched=0)
                return ListResult(items=[], total=total)
            fetched = collect(session, subset, SUMMARY_ITEMS)
        wanted = set(subset)
        summaries = [_summary(uid, data) for uid, data in fetched if uid in wanted]
        summaries.sort(key=lambda summary: summary.uid, reverse=True)
        LOGGER.info("imap_list", mailbox=mailbox, total=total, page=page.number, fetched=len(summaries))
        return ListResult(items=summaries, total=total)

    # -- Thread negotiator --------------------------------------------

    def list_threads(
        self,
        mailbox: str = DEFAULT_MAILBOX,
        page: int = 1,
        page_size: int = 20,
        *,
        charset: str = DEFAULT_CHARSET,
    ) -> ListResult:
        """Return the newest-first page of conversations in ``mailbox``.

        Raises:
          ThreadUnsupportedError: When the server cannot thread; callers are
            expected to fall back to :meth:`list_messages`.
        """

        return self._threads(mailbox, None, Page.of(page, page_size), charset)

    def search_threads(
        self,
        mailbox: str,
        query: str,
        page: int = 1,
        page_size: int = 20,
        *,
        charset: str = DEFAULT_CHARSET,
    ) -> ListResult:
        """Thread only the messages matching ``query``."""

        return self._threads(mailbox, query, Page.of(page, page_size), charset)

    def _threads(self, mailbox: str, query: Optional[str], page: Page, charset: str) -> ListResult:
        criteria = build_search(query)
        with self._session("thread") as session:
            session.select(mailbox, readonly=True)
            groups = ThreadNegotiator(session, charset=charset).run(criteria)
            groups.sort(key=max)
            total = len(groups)
            window = paginate(groups, page)
            if not window:
                return ListResult(items=[], total=total)
            representatives = [max(group) for group in window]
            fetched = dict(collect(session, representatives, THREAD_ITEMS))
        threads: List[ThreadSummary] = []
        for group in window:
            uid = max(group)
            envelope = fetched.get(uid, {}).get(b"ENVELOPE")
            threads.append(
                ThreadSummary(
                    uid=uid,
                    count=len(group),
                    subject=decode_header_text(getattr(envelope, "subject", None)),
                    from_=format_addresses(getattr(envelope, "from_", None)),
                    date=getattr(envelope, "date", None),
                    uids=tuple(group),
                )
            )
        threads.sort(key=lambda thread: thread.uid, reverse=True)
        LOGGER.info("imap_threads", mailbox=mailbox, total=total, page=page.number, fetched=len(threads))
        return ListResult(items=threads, total=total)

    # -- Message access -----------------------------------------------

    def read_message(self, mailbox: str, uid: int) -> MessageDetail:
        """Fetch the envelope and display body of one message.

        The body is the first inline ``text/plain`` part; attachment parts
        without a filename are left out of the attachment list.

        Raises:
          MessageNotFoundError: If ``uid`` does not exist in ``mailbox``.
        """

        with self._session("read") as session:
            session.select(mailbox, readonly=True)
            data = session.fetch([uid], ["ENVELOPE", RAW_ITEM]).get(uid)
        if not data or RAW_KEY not in data:
            raise MessageNotFoundError(mailbox, uid)
        message = mime.parse_message(data[RAW_KEY])
        envelope = data.get(b"ENVELOPE")
        attachments = [
            part.get_filename() for part in mime.attachment_parts(message) if part.get_filename()
        ]
        if envelope is None:
            return MessageDetail(
                uid=uid,
                subject=str(message.get("Subject", "")),
                from_=str(message.get("From", "")),
                to=str(message.get("To", "")),
                cc=str(message.get("Cc", "")),
                date=None,
                body=mime.first_inline_text(message, "plain"),
                attachments=attachments,
            )
        return MessageDetail(
            uid=uid,
            subject=decode_header_text(envelope.subject),
            from_=format_addresses(envelope.from_),
            to=format_addresses(envelope.to),
            cc=format_addresses(envelope.cc),
            date=envelope.date,
            body=mime.first_inline_text(message, "plain"),
            attachments=attachments,
        )

    def fetch_raw(self, mailbox: str, uid: int) -> bytes:
        """Return the complete RFC 5322 bytes of one message.

        Raises:
          MessageNotFoundError: If ``uid`` does not exist in ``mailbox``.
        """

        with self._session("fetch") as session:
            session.select(mailbox, readonly=True)
            data = session.fetch([uid], [RAW_ITEM]).get(uid)
        if not data or data.get(RAW_KEY) is None:
            raise MessageNotFoundError(mailbox, uid)
        return bytes(data[RAW_KEY])

    def download_attachments(self, mailbox: str, uid: int, directory: Path | str) -> List[Path]:
        """Save every attachment of one message into ``directory``."""

        raw = self.fetch_raw(mailbox, uid)
        saved = save_attachments(raw, Path(directory))
        LOGGER.info("attachments_saved", mailbox=mailbox, uid=uid, count=len(saved))
        return saved

    # -- Mutations ----------------------------------------------------

    def delete_message(self, mailbox: str, uid: int) -> None:
        """Flag one message ``\\Deleted`` and expunge the mailbox."""

        with self._session("delete") as session:
            session.select(mailbox, readonly=False)
            session.add_flags([uid], [DELETED_FLAG], silent=True)
            session.expunge()
        LOGGER.info("imap_deleted", mailbox=mailbox, uid=uid)

    def move_message(self, mailbox: str, uid: int, destination: str) -> None:
        """Move one message, emulating ``MOVE`` with copy+delete when refused."""

        if not destination:
            raise ValidationError("destination mailbox is required")
        with self._session("move") as session:
            session.select(mailbox, readonly=False)
            try:
                session.move([uid], destination)
            except IMAPClientError as exc:
                LOGGER.warning("imap_move_fallback", mailbox=mailbox, uid=uid, error=str(exc))
                session.copy([uid], destination)
                session.add_flags([uid], [DELETED_FLAG], silent=True)
                session.expunge()
        LOGGER.info("imap_moved", mailbox=mailbox, uid=uid, destination=destination)

    def add_tag(self, mailbox: str, uid: int, tag: str) -> None:
        """Store ``tag`` as a keyword flag on one message."""

        tag = (tag or "").strip()
        if not tag:
            raise ValidationError("tag is required")
        with self._session("tag") as session:
            session.select(mailbox, readonly=False)
            session.add_flags([uid], [tag], silent=False)

    def save_draft(self, payload: bytes, mailbox: Optional[str] = None) -> str:
        """Append ``payload`` flagged ``\\Draft`` and return the target mailbox."""

        target = mailbox or self.drafts_mailbox
        with self._session("append") as session:
            session.append(target, payload, flags=[DRAFT_FLAG])
        LOGGER.info("imap_draft_saved", mailbox=target, size=len(payload))
        return target

    def list_drafts(self, page: int = 1, page_size: int = 20) -> ListResult:
        return self.list_messages(self.drafts_mailbox, page, page_size)

    # -- Mailboxes ----------------------------------------------------

    def mailbox_status(self, mailbox: str = DEFAULT_MAILBOX) -> MailboxStatus:
        with self._session("status") as session:
            counts = session.status(mailbox)
        return MailboxStatus(
            mailbox=mailbox,
            messages=counts.get("MESSAGES", 0),
            unseen=counts.get("UNSEEN", 0),
        )

    def list_mailboxes(self) -> List[MailboxInfo]:
        with self._session("list mailboxes") as session:
            return session.list_mailboxes()

    def create_mailbox(self, name: str) -> None:
        if not name or not name.strip():
            raise ValidationError("mailbox name is required")
        with self._session("create mailbox") as session:
            session.create_mailbox(name.strip())

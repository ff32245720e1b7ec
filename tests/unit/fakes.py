"""In-memory IMAP backend used by the test suite.

What:
  Provide a drop-in replacement for :class:`imapclient.IMAPClient` that stores
  messages in Python dictionaries and answers the subset of the API used by
  :class:`mailcli.imap.client.MailSession`.

Why:
  Listing, threading, reading and mutation flows must be exercised without a
  real server, including the awkward parts of real servers: unsorted search
  results, fetch responses in arbitrary order and missing capabilities.

How:
  Each mailbox maps UIDs to :class:`_MessageRecord` entries. ``fetch`` builds
  real :class:`imapclient.response_types.Envelope` tuples from the stored
  headers and returns the UIDs in reverse order. Every call is recorded in
  :attr:`FakeImapBackend.calls` for assertions.

Interfaces:
  :class:`FakeImapBackend`, :func:`make_message`.

Invariants & Safety:
  - UIDs increase monotonically per mailbox and are never reused.
  - No method touches the network.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from email import policy
from email.parser import BytesParser
from email.utils import getaddresses, parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from imapclient.exceptions import CapabilityError, IMAPClientError
from imapclient.response_types import Address, Envelope


def make_message(
    subject: str = "Hello",
    sender: str = "Bob <bob@example.test>",
    to: str = "alice@example.test",
    cc: str = "",
    body: str = "Hi there",
    date: str = "Mon, 06 Jan 2025 10:00:00 +0000",
    message_id: str = "",
    extra_headers: Sequence[Tuple[str, str]] = (),
) -> bytes:
    """Build a simple single-part ``text/plain`` message."""

    lines = [f"From: {sender}", f"To: {to}"]
    if cc:
        lines.append(f"Cc: {cc}")
    lines.append(f"Subject: {subject}")
    lines.append(f"Date: {date}")
    if message_id:
        lines.append(f"Message-ID: {message_id}")
    for name, value in extra_headers:
        lines.append(f"{name}: {value}")
    lines.append('Content-Type: text/plain; charset="utf-8"')
    lines.append("")
    lines.append(body)
    return ("\r\n".join(lines) + "\r\n").encode("utf-8")


def _addresses(value: Optional[str]) -> Optional[Tuple[Address, ...]]:
    if not value:
        return None
    result = []
    for name, address in getaddresses([value]):
        mailbox, _, host = address.partition("@")
        result.append(
            Address(
                name.encode("utf-8") if name else None,
                None,
                mailbox.encode("utf-8"),
                host.encode("utf-8") if host else None,
            )
        )
    return tuple(result)


@dataclass
class _MessageRecord:
    uid: int
    raw: bytes
    flags: List[bytes] = field(default_factory=list)

    def envelope(self) -> Envelope:
        message = BytesParser(policy=policy.compat32).parsebytes(self.raw)
        date_header = message.get("Date")
        date = parsedate_to_datetime(date_header) if date_header else None
        subject = message.get("Subject")
        return Envelope(
            date,
            subject.encode("utf-8") if subject is not None else None,
            _addresses(message.get("From")),
            _addresses(message.get("From")),
            _addresses(message.get("Reply-To")),
            _addresses(message.get("To")),
            _addresses(message.get("Cc")),
            None,
            None,
            (message.get("Message-ID") or "").encode("utf-8") or None,
        )


class FakeImapBackend:
    """Minimal IMAP backend mimicking :class:`imapclient.IMAPClient`.

    Args:
      capabilities: Advertised capabilities as bytes.
    """

    def __init__(self, capabilities: Iterable[bytes] = (b"IMAP4REV1", b"MOVE", b"THREAD=REFERENCES")):
        self.capability_set: Tuple[bytes, ...] = tuple(capabilities)
        self.mailboxes: Dict[str, Dict[int, _MessageRecord]] = {"INBOX": {}, "Drafts": {}}
        self._uid_next: Dict[str, int] = {"INBOX": 1, "Drafts": 1}
        self.selected: Optional[str] = None
        self.readonly: Optional[bool] = None
        self.logged_in = False
        self.logged_out = False
        self.calls: List[Tuple[str, Any]] = []
        self.thread_response: Tuple[Any, ...] = ()
        self.thread_error: Optional[Exception] = None
        self.fetch_error: Optional[Exception] = None

    # Test helpers -------------------------------------------------------
    def add(self, mailbox: str, raw: bytes, flags: Iterable[bytes] = ()) -> int:
        """Store ``raw`` in ``mailbox`` and return its UID."""

        self.mailboxes.setdefault(mailbox, {})
        uid = self._uid_next.get(mailbox, 1)
        self._uid_next[mailbox] = uid + 1
        self.mailboxes[mailbox][uid] = _MessageRecord(uid=uid, raw=raw, flags=list(flags))
        return uid

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def _box(self) -> Dict[int, _MessageRecord]:
        if self.selected is None:
            raise IMAPClientError("no mailbox selected")
        return self.mailboxes[self.selected]

    # Session management -------------------------------------------------
    def login(self, username: str, password: str) -> None:
        self.calls.append(("login", username))
        self.logged_in = True

    def logout(self) -> None:
        self.calls.append(("logout", None))
        self.logged_out = True

    def starttls(self, ssl_context=None) -> None:
        self.calls.append(("starttls", None))

    def capabilities(self) -> Tuple[bytes, ...]:
        self.calls.append(("capabilities", None))
        return self.capability_set

    # Mailboxes ----------------------------------------------------------
    def list_folders(self):
        return [((b"\\HasNoChildren",), b"/", name) for name in sorted(self.mailboxes)]

    def create_folder(self, name: str) -> None:
        self.calls.append(("create_folder", name))
        self.mailboxes.setdefault(name, {})
        self._uid_next.setdefault(name, 1)

    def select_folder(self, name: str, readonly: bool = False) -> Dict[bytes, Any]:
        if name not in self.mailboxes:
            raise IMAPClientError(f"select failed: mailbox {name} does not exist")
        self.calls.append(("select_folder", (name, readonly)))
        self.selected = name
        self.readonly = readonly
        return {b"EXISTS": len(self.mailboxes[name])}

    def folder_status(self, folder: str, what: Sequence[str]) -> Dict[bytes, int]:
        box = self.mailboxes[folder]
        unseen = sum(1 for record in box.values() if b"\\Seen" not in record.flags)
        return {b"MESSAGES": len(box), b"UNSEEN": unseen}

    # Queries ------------------------------------------------------------
    def search(self, criteria: Any = "ALL") -> List[int]:
        self.calls.append(("search", criteria))
        box = self._box()
        if criteria == "ALL":
            matches = list(box)
        else:
            key, value = criteria[0], criteria[1]
            assert key == "TEXT"
            needle = value.lower()
            matches = [uid for uid, record in box.items() if needle in record.raw.decode("utf-8", "replace").lower()]
        # Real servers make no ordering promise.
        return sorted(matches, key=lambda uid: (uid % 3, -uid))

    def fetch(self, uids: Iterable[int], items: Sequence[str]) -> Dict[int, Dict[bytes, Any]]:
        uids = list(uids)
        self.calls.append(("fetch", (tuple(uids), tuple(items))))
        if self.fetch_error is not None:
            raise self.fetch_error
        box = self._box()
        response: Dict[int, Dict[bytes, Any]] = {}
        for uid in reversed(uids):
            record = box.get(uid)
            if record is None:
                continue
            data: Dict[bytes, Any] = {b"SEQ": uid}
            for item in items:
                upper = item.upper()
                if upper == "ENVELOPE":
                    data[b"ENVELOPE"] = record.envelope()
                elif upper == "FLAGS":
                    data[b"FLAGS"] = tuple(record.flags)
                elif upper == "RFC822.SIZE":
                    data[b"RFC822.SIZE"] = len(record.raw)
                elif upper in ("BODY[]", "BODY.PEEK[]", "RFC822"):
                    data[b"BODY[]"] = record.raw
            response[uid] = data
        return response

    def thread(self, algorithm: str = "REFERENCES", criteria: Any = "ALL", charset: str = "UTF-8"):
        self.calls.append(("thread", (algorithm, criteria, charset)))
        if self.thread_error is not None:
            raise self.thread_error
        return self.thread_response

    # Mutations ----------------------------------------------------------
    def add_flags(self, uids: Iterable[int], flags: Sequence[Any], silent: bool = False):
        uids = list(uids)
        self.calls.append(("add_flags", (tuple(uids), tuple(flags), silent)))
        box = self._box()
        for uid in uids:
            record = box.get(uid)
            if record is None:
                continue
            for flag in flags:
                value = flag.encode("utf-8") if isinstance(flag, str) else flag
                if value not in record.flags:
                    record.flags.append(value)
        return None if silent else {uid: tuple(box[uid].flags) for uid in uids if uid in box}

    def expunge(self) -> None:
        self.calls.append(("expunge", self.selected))
        box = self._box()
        for uid in [uid for uid, record in box.items() if b"\\Deleted" in record.flags]:
            del box[uid]

    def copy(self, uids: Iterable[int], folder: str) -> None:
        uids = list(uids)
        self.calls.append(("copy", (tuple(uids), folder)))
        box = self._box()
        for uid in uids:
            if uid in box:
                self.add(folder, box[uid].raw, [flag for flag in box[uid].flags if flag != b"\\Deleted"])

    def move(self, uids: Iterable[int], folder: str) -> None:
        uids = list(uids)
        if b"MOVE" not in self.capability_set:
            raise CapabilityError("Server does not support MOVE capability")
        self.calls.append(("move", (tuple(uids), folder)))
        box = self._box()
        for uid in uids:
            record = box.pop(uid, None)
            if record is not None:
                self.add(folder, record.raw, record.flags)

    def append(self, folder: str, msg: bytes, flags: Sequence[Any] = (), msg_time=None) -> bytes:
        self.calls.append(("append", (folder, tuple(flags))))
        if folder not in self.mailboxes:
            raise IMAPClientError(f"append failed: mailbox {folder} does not exist")
        encoded = [flag.encode("utf-8") if isinstance(flag, str) else flag for flag in flags]
        uid = self.add(folder, msg, encoded)
        return f"[APPENDUID 1 {uid}] APPEND completed".encode("ascii")

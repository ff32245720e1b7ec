"""Read-only result types returned by the mail service."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class MessageSummary:
    """One row of a message listing; identity is ``(mailbox, uid)``."""

    uid: int
    subject: str
    from_: str
    date: Optional[datetime]
    size: int
    flags: Tuple[str, ...] = ()

    @property
    def seen(self) -> bool:
        return "\\Seen" in self.flags


@dataclass(frozen=True)
class ThreadSummary:
    """One conversation group, represented by its newest message."""

    uid: int
    count: int
    subject: str
    from_: str
    date: Optional[datetime]
    uids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class MessageDetail:
    """Envelope plus display body and attachment names of one message."""

    uid: int
    subject: str
    from_: str
    to: str
    cc: str
    date: Optional[datetime]
    body: str
    attachments: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ListResult:
    """A page of items together with the total number of matches."""

    items: list
    total: int


@dataclass(frozen=True)
class MailboxStatus:
    mailbox: str
    messages: int
    unseen: int

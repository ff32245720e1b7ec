"""Facade for the IMAP integration layer.

What:
  Surface the connection dataclass, the session context manager and the
  session-per-operation :class:`~mailcli.imap.service.MailService`.

Why:
  Call sites depend on this small surface instead of the submodules
  (pagination, streaming, thread negotiation) that implement it.

Interfaces:
  ``ImapConfig``, ``MailSession``, ``MailService`` and the result types.
"""

from .client import ImapConfig, MailboxInfo, MailSession
from .service import MailService
from .types import ListResult, MailboxStatus, MessageDetail, MessageSummary, ThreadSummary

__all__ = [
    "ImapConfig",
    "ListResult",
    "MailboxInfo",
    "MailboxStatus",
    "MailService",
    "MailSession",
    "MessageDetail",
    "MessageSummary",
    "ThreadSummary",
]

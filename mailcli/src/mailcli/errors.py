"""Typed failure conditions raised by the mailcli core.

What:
  Define the exception hierarchy shared by the IMAP service, the compose and
  reply engines, the SMTP sender and the command line.

Why:
  Callers must tell apart a missing message, an absent server feature, bad user
  input and a broken connection. Distinct types let the CLI fall back (thread
  listing) or report precisely without string matching.

How:
  A single :class:`MailError` root with one subclass per category. Subclasses
  also inherit from the closest builtin (``LookupError``, ``ValueError``) so
  generic handlers keep working.

Interfaces:
  :class:`MailError`, :class:`TransportError`, :class:`MessageNotFoundError`,
  :class:`ThreadUnsupportedError`, :class:`ValidationError`.

Invariants & Safety:
  - ``ValidationError`` is raised before any network interaction.
  - ``ThreadUnsupportedError.reason`` is one of :data:`THREAD_NO_ALGORITHM` or
    :data:`THREAD_COMMAND_FAILED`.
"""
from __future__ import annotations

from typing import Optional


THREAD_NO_ALGORITHM = "no-algorithm"
THREAD_COMMAND_FAILED = "command-failed"


class MailError(Exception):
    """Base class for every mailcli failure."""


class TransportError(MailError):
    """Connection, authentication or command failure reported by a server.

    What:
      Wraps errors raised by ``imapclient``, ``smtplib`` or the socket layer.

    Why:
      Callers only need to know that the remote side failed; the original
      exception stays reachable through ``__cause__``.
    """


class MessageNotFoundError(MailError, LookupError):
    """Raised when a UID fetch returns no message."""

    def __init__(self, mailbox: str, uid: int):
        super().__init__(f"message {uid} not found in {mailbox}")
        self.mailbox = mailbox
        self.uid = uid


class ThreadUnsupportedError(MailError):
    """Server-side threading cannot be used for this session.

    What:
      Signals that either no ``THREAD=<ALG>`` capability is advertised or the
      chosen algorithm was rejected by the server.

    Why:
      Both outcomes let the caller fall back to a plain message listing, while
      ``reason`` keeps "feature absent" distinguishable from "feature failed".

    Attributes:
      reason: :data:`THREAD_NO_ALGORITHM` or :data:`THREAD_COMMAND_FAILED`.
      algorithm: Algorithm that was attempted, if any.
    """

    def __init__(self, reason: str, algorithm: Optional[str] = None, detail: str = ""):
        message = "server does not support THREAD"
        if algorithm:
            message = f"THREAD={algorithm} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.reason = reason
        self.algorithm = algorithm


class ValidationError(MailError, ValueError):
    """Invalid user input detected before contacting any server."""

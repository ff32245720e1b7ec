"""Session-scoped IMAP connection built on ``imapclient``.

What:
  Wrap :class:`imapclient.IMAPClient` in a context manager that connects,
  negotiates TLS, authenticates and always logs out, and expose the UID-based
  primitives the mail service needs.

Why:
  Every logical operation opens its own session and must release it on every
  exit path. Centralising connection setup keeps TLS handling and error
  translation identical across list, read, move, append and thread commands.

How:
  :meth:`MailSession.__enter__` builds an ``IMAPClient`` (implicit TLS, plain
  with STARTTLS, or plain), logs in, and returns itself. Low-level failures are
  translated into :class:`~mailcli.errors.TransportError`. :meth:`__exit__`
  logs out inside ``try``/``finally`` and never masks the primary exception.

Interfaces:
  :class:`ImapConfig`, :class:`MailSession`.

Invariants & Safety:
  - The client runs in UID mode; sequence numbers are never used.
  - ``__exit__`` clears the connection reference even when logout fails.
"""
from __future__ import annotations

import ssl
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError

from ..errors import TransportError
from ..utils.logging import get_logger


LOGGER = get_logger("mailcli.imap")

Criteria = Union[str, Sequence[Any]]


@dataclass
class ImapConfig:
    """Connection parameters for an IMAP server.

    What:
      Resolved host, port, TLS mode and credentials for one account.

    Why:
      The session never reads configuration files; callers build this
      dataclass from whatever source they use.

    Attributes:
      host: IMAP hostname.
      username: Login name.
      password: Password or app-specific token.
      port: IMAP port, 993 for implicit TLS.
      ssl: Use implicit TLS on connect.
      starttls: Upgrade a plain connection with ``STARTTLS``.
      insecure_skip_verify: Disable certificate verification.
      timeout: Socket timeout in seconds.
    """

    host: str
    username: str
    password: str
    port: int = 993
    ssl: bool = True
    starttls: bool = False
    insecure_skip_verify: bool = False
    timeout: Optional[float] = None

    def ssl_context(self) -> ssl.SSLContext:
        """Build the TLS context honouring ``insecure_skip_verify``."""

        context = ssl.create_default_context()
        if self.insecure_skip_verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context


@dataclass(frozen=True)
class MailboxInfo:
    """One entry of a ``LIST`` response."""

    name: str
    delimiter: str
    flags: Tuple[str, ...]


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class MailSession:
    """Context manager owning one authenticated IMAP connection.

    What:
      Mediates mailbox selection and UID commands for a single logical
      operation.

    Why:
      Callers get a narrow, typed surface instead of the full ``IMAPClient``
      API, and tests can swap the backend by patching ``IMAPClient``.

    How:
      Connects lazily in :meth:`__enter__`; each helper delegates to the
      connected client through :attr:`client`.
    """

    def __init__(self, config: ImapConfig):
        self._config = config
        self._client: Optional[IMAPClient] = None
        self._selected: Optional[str] = None

    def __enter__(self) -> "MailSession":
        """Connect, negotiate TLS and authenticate.

        Raises:
          TransportError: When the connection, TLS upgrade or login fails.
        """

        config = self._config
        context = config.ssl_context()
        try:
            client = IMAPClient(
                config.host,
                port=config.port,
                ssl=config.ssl,
                ssl_context=context,
                timeout=config.timeout,
            )
        except (IMAPClientError, OSError) as exc:
            raise TransportError(f"connect to {config.host}:{config.port} failed: {exc}") from exc
        try:
            if config.starttls and not config.ssl:
                client.starttls(context)
            client.login(config.username, config.password)
        except (IMAPClientError, OSError) as exc:
            self._safe_close(client)
            raise TransportError(f"login to {config.host} failed: {exc}") from exc
        self._client = client
        LOGGER.info("imap_session_opened", host=config.host, port=config.port)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        """Log out and release the connection on every exit path."""

        if self._client is None:
            return
        try:
            self._client.logout()
        except (IMAPClientError, OSError) as logout_exc:
            LOGGER.warning("imap_logout_failed", error=str(logout_exc))
        finally:
            self._client = None
            self._selected = None

    @staticmethod
    def _safe_close(client: IMAPClient) -> None:
        try:
            client.logout()
        except (IMAPClientError, OSError) as exc:
            LOGGER.warning("imap_logout_failed", error=str(exc))

    @property
    def client(self) -> IMAPClient:
        """Return the connected ``IMAPClient``.

        Raises:
          RuntimeError: If accessed outside the ``with`` block.
        """

        if self._client is None:
            raise RuntimeError("IMAP client not connected")
        return self._client

    @property
    def config(self) -> ImapConfig:
        return self._config

    def capabilities(self) -> Tuple[str, ...]:
        """Return advertised capabilities as upper-case strings."""

        return tuple(_text(cap).upper() for cap in self.client.capabilities())

    def select(self, mailbox: str, *, readonly: bool = True) -> Dict[Any, Any]:
        response = self.client.select_folder(mailbox, readonly=readonly)
        self._selected = mailbox
        return response

    def uid_search(self, criteria: Criteria = "ALL") -> List[int]:
        return [int(uid) for uid in self.client.search(criteria)]

    def fetch(self, uids: Iterable[int], items: Sequence[str]) -> Dict[int, Dict[bytes, Any]]:
        return self.client.fetch(list(uids), list(items))

    def thread(self, algorithm: str, criteria: Criteria, charset: str) -> Tuple[Any, ...]:
        """Issue ``UID THREAD`` and return the nested response."""

        return self.client.thread(algorithm=algorithm, criteria=criteria, charset=charset)

    def status(self, mailbox: str) -> Dict[str, int]:
        """Return ``MESSAGES`` and ``UNSEEN`` counts for ``mailbox``."""

        response = self.client.folder_status(mailbox, ["MESSAGES", "UNSEEN"])
        return {_text(key).upper(): int(value) for key, value in response.items()}

    def list_mailboxes(self) -> List[MailboxInfo]:
        entries = []
        for flags, delimiter, name in self.client.list_folders():
            entries.append(
                MailboxInfo(
                    name=_text(name),
                    delimiter=_text(delimiter) if delimiter is not None else "",
                    flags=tuple(_text(flag) for flag in flags),
                )
            )
        return entries

    def create_mailbox(self, name: str) -> None:
        self.client.create_folder(name)

    def add_flags(self, uids: Iterable[int], flags: Sequence[str], *, silent: bool = True) -> None:
        self.client.add_flags(list(uids), list(flags), silent=silent)

    def move(self, uids: Iterable[int], destination: str) -> None:
        self.client.move(list(uids), destination)

    def copy(self, uids: Iterable[int], destination: str) -> None:
        self.client.copy(list(uids), destination)

    def expunge(self) -> None:
        self.client.expunge()

    def append(
        self,
        mailbox: str,
        payload: bytes,
        *,
        flags: Sequence[str] = (),
        msg_time: Optional[datetime] = None,
    ) -> Any:
        return self.client.append(mailbox, payload, flags=tuple(flags), msg_time=msg_time)

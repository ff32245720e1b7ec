"""Outbound delivery over SMTP.

What:
  Submit an already-built message to an SMTP server using implicit TLS or
  STARTTLS and password authentication.

Why:
  Composition produces final bytes; delivery only needs the envelope sender
  and recipient list, which may include Bcc addresses absent from the headers.

How:
  Open :class:`smtplib.SMTP_SSL` or :class:`smtplib.SMTP` (upgraded with
  ``STARTTLS``), log in, and call ``sendmail`` with the raw bytes. Protocol
  and socket failures are translated into
  :class:`~mailcli.errors.TransportError`.

Interfaces:
  :class:`SmtpConfig`, :func:`send_message`.
"""
from __future__ import annotations

import smtplib
import ssl
from dataclasses import dataclass
from email.utils import parseaddr
from typing import Any, Dict, Optional, Sequence

from ..errors import TransportError, ValidationError
from ..utils.logging import get_logger


LOGGER = get_logger("mailcli.smtp")


@dataclass
class SmtpConfig:
    """Connection parameters for an SMTP submission server."""

    host: str
    username: str = ""
    password: str = ""
    port: int = 587
    ssl: bool = False
    starttls: bool = True
    insecure_skip_verify: bool = False
    timeout: Optional[float] = None

    def ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if self.insecure_skip_verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context


def _connect(config: SmtpConfig) -> smtplib.SMTP:
    kwargs: Dict[str, Any] = {}
    if config.timeout is not None:
        kwargs["timeout"] = config.timeout
    if config.ssl:
        return smtplib.SMTP_SSL(config.host, config.port, context=config.ssl_context(), **kwargs)
    return smtplib.SMTP(config.host, config.port, **kwargs)


def send_message(config: SmtpConfig, sender: str, recipients: Sequence[str], payload: bytes) -> None:
    """Deliver ``payload`` from ``sender`` to every address in ``recipients``.

    Raises:
      ValidationError: If ``recipients`` is empty.
      TransportError: On connection, TLS, authentication or delivery failure.
    """

    if not recipients:
        raise ValidationError("no recipients provided")
    envelope_from = parseaddr(sender)[1] or sender
    try:
        with _connect(config) as server:
            if config.starttls and not config.ssl:
                server.starttls(context=config.ssl_context())
            if config.username:
                server.login(config.username, config.password)
            refused = server.sendmail(envelope_from, list(recipients), payload)
    except (smtplib.SMTPException, OSError) as exc:
        LOGGER.error("smtp_send_failed", host=config.host, error=str(exc))
        raise TransportError(f"send via {config.host} failed: {exc}") from exc
    if refused:
        LOGGER.warning("smtp_recipients_refused", refused=sorted(refused))
    LOGGER.info("smtp_sent", host=config.host, recipients=len(recipients), size=len(payload))

"""Helper utilities bridging the CLI with the mail services.

What:
  Turn CLI inputs into service calls: build session settings from the loaded
  configuration, read message bodies, parse comma-separated address flags,
  validate reply options, derive reply fields and drive the send and draft
  flows.

Why:
  Keeping this logic out of the Typer command functions makes it testable
  without a terminal and guarantees that validation happens before any
  network interaction.

How:
  Plain functions operating on a mutable :class:`Outgoing` record. Reply
  derivation fetches the raw source through :class:`MailService` and applies
  :mod:`mailcli.mail.reply`; explicit ``--to``/``--cc`` values always win
  over derived recipients.

Interfaces:
  ``split_list``, ``load_body``, ``parse_reply_uid``, ``check_reply_flags``,
  ``imap_config``, ``smtp_config``, ``build_service``, ``Outgoing``,
  ``prepare_reply``, ``compose``, ``send_outgoing``, ``save_outgoing``,
  ``send_draft``.

Invariants & Safety:
  - Every ``ValidationError`` raised here precedes the first server contact.
  - ``send_draft`` only deletes the stored draft after a successful send.
"""
from __future__ import annotations

import sys
from dataclasses import dataclass, field
from email.utils import parseaddr
from pathlib import Path
from typing import IO, List, Optional

from .config import MailConfig, validate_imap, validate_smtp
from .errors import ValidationError
from .imap import ImapConfig, MailService
from .mail.compose import ComposeInput, build_message, extract_recipients, strip_private_headers
from .mail.reply import (
    apply_quote,
    build_reply_headers,
    derive_recipients,
    extract_reply_info,
    reply_subject,
)
from .smtp import SmtpConfig, send_message
from .utils import mime
from .utils.logging import get_logger


LOGGER = get_logger("mailcli.wiring")

DEFAULT_REPLY_MAILBOX = "INBOX"


def split_list(value: Optional[str]) -> List[str]:
    """Split a comma-separated flag value, dropping blanks."""

    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def load_body(body: Optional[str], body_file: Optional[str], stdin: Optional[IO[str]] = None) -> str:
    """Resolve the message body from ``--body`` or ``--body-file``.

    ``body_file`` may be ``-`` to read standard input.

    Raises:
      ValidationError: When both sources are given or the file is unreadable.
    """

    if body and body_file:
        raise ValidationError("use either --body or --body-file")
    if body_file:
        if body_file == "-":
            return (stdin or sys.stdin).read()
        try:
            return Path(body_file).expanduser().read_text(encoding="utf-8")
        except OSError as exc:
            raise ValidationError(f"cannot read body file {body_file}: {exc}") from exc
    return body or ""


def parse_reply_uid(value: Optional[str]) -> Optional[int]:
    """Return the reply UID as a positive integer, or ``None`` when unset.

    Raises:
      ValidationError: ``invalid reply uid`` for non-numeric or non-positive input.
    """

    if value is None or value == "":
        return None
    text = str(value).strip()
    if not text.isdigit() or int(text) <= 0:
        raise ValidationError("invalid reply uid")
    return int(text)


def check_reply_flags(reply_uid: Optional[int], reply_all: bool, quote: bool) -> None:
    if reply_uid is None and (reply_all or quote):
        raise ValidationError("--reply-all and --quote require --reply-uid")


def imap_config(config: MailConfig) -> ImapConfig:
    validate_imap(config)
    return ImapConfig(
        host=config.imap.host,
        port=config.imap.port,
        username=config.auth.username,
        password=config.auth.password,
        ssl=config.imap.tls,
        starttls=config.imap.starttls,
        insecure_skip_verify=config.imap.insecure_skip_verify,
        timeout=config.imap.timeout,
    )


def smtp_config(config: MailConfig) -> SmtpConfig:
    validate_smtp(config)
    return SmtpConfig(
        host=config.smtp.host,
        port=config.smtp.port,
        username=config.auth.username,
        password=config.auth.password,
        ssl=config.smtp.tls,
        starttls=config.smtp.starttls,
        insecure_skip_verify=config.smtp.insecure_skip_verify,
        timeout=config.smtp.timeout,
    )


def build_service(config: MailConfig) -> MailService:
    return MailService(imap_config(config), drafts_mailbox=config.defaults.drafts_mailbox)


@dataclass
class Outgoing:
    """Mutable description of a message being prepared from CLI flags."""

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

    @property
    def recipients(self) -> List[str]:
        return [address for address in self.to + self.cc + self.bcc if address]


def prepare_reply(
    service: MailService,
    outgoing: Outgoing,
    *,
    uid: int,
    mailbox: str = DEFAULT_REPLY_MAILBOX,
    reply_all: bool = False,
    quote: bool = False,
) -> Outgoing:
    """Fill threading headers, recipients, subject and quote from a source message.

    Explicit recipients and subject already on ``outgoing`` are kept.
    """

    raw = service.fetch_raw(mailbox or DEFAULT_REPLY_MAILBOX, uid)
    info = extract_reply_info(raw, include_bodies=quote)
    outgoing.in_reply_to, outgoing.references = build_reply_headers(info)
    outgoing.body, outgoing.html_body = apply_quote(outgoing.body, outgoing.html_body, quote, info)
    if not outgoing.subject:
        outgoing.subject = reply_subject(info.subject)
    to, cc = derive_recipients(info, outgoing.from_, reply_all)
    if not outgoing.to:
        outgoing.to = to
    if not outgoing.cc:
        outgoing.cc = cc
    LOGGER.info("reply_prepared", uid=uid, mailbox=mailbox, reply_all=reply_all, quote=quote)
    return outgoing


def compose(outgoing: Outgoing, *, store_bcc_header: bool = False) -> bytes:
    return build_message(
        ComposeInput(
            from_=outgoing.from_,
            to=outgoing.to,
            cc=outgoing.cc,
            bcc=outgoing.bcc,
            reply_to=outgoing.reply_to,
            subject=outgoing.subject,
            body=outgoing.body,
            html_body=outgoing.html_body,
            in_reply_to=outgoing.in_reply_to,
            references=outgoing.references,
            attachments=outgoing.attachments,
            store_bcc_header=store_bcc_header,
        )
    )


def send_outgoing(config: MailConfig, outgoing: Outgoing) -> List[str]:
    """Validate and deliver ``outgoing``; return the envelope recipients.

    Raises:
      ValidationError: ``message body required`` or
        ``at least one recipient is required``.
    """

    if not outgoing.body.strip() and not outgoing.html_body.strip():
        raise ValidationError("message body required")
    recipients = outgoing.recipients
    if not recipients:
        raise ValidationError("at least one recipient is required")
    settings = smtp_config(config)
    payload = compose(outgoing)
    send_message(settings, outgoing.from_, recipients, payload)
    return recipients


def save_outgoing(service: MailService, outgoing: Outgoing) -> str:
    """Store ``outgoing`` as a draft, remembering Bcc in the private header."""

    payload = compose(outgoing, store_bcc_header=bool(outgoing.bcc))
    return service.save_draft(payload)


def send_draft(config: MailConfig, service: MailService, uid: int, *, keep: bool = False) -> List[str]:
    """Send the stored draft ``uid`` and delete it unless ``keep`` is set.

    Raises:
      ValidationError: ``draft has no recipients``.
    """

    settings = smtp_config(config)
    raw = service.fetch_raw(service.drafts_mailbox, uid)
    recipients = extract_recipients(raw)
    if not recipients:
        raise ValidationError("draft has no recipients")
    sender = str(mime.parse_message(raw).get("From", "") or "")
    if not parseaddr(sender)[1]:
        sender = config.auth.username
    send_message(settings, sender, recipients, strip_private_headers(raw))
    if not keep:
        service.delete_message(service.drafts_mailbox, uid)
    return recipients

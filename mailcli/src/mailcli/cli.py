"""mailcli command-line interface.

What:
  Provide a Typer application exposing mailbox status, listing, search,
  thread listing, reading, sending, drafts, deletion, moving, tagging,
  attachment download and configuration inspection.

Why:
  Operators need a scriptable front end. Keeping the commands thin over
  :mod:`mailcli._wiring` and :class:`~mailcli.imap.MailService` means every
  entry point shares the same validation, session lifecycle and error
  reporting.

How:
  A global ``--config`` option selects the configuration file. Each command
  loads the configuration, builds the service and prints plain text to
  stdout. Known failures are reported on stderr with exit code ``1``;
  ``--threads`` falls back to a message listing when the server cannot
  thread.

Interfaces:
  ``app`` (Typer application), ``main``.

Invariants & Safety:
  - Exit codes follow shell expectations (``0`` success, ``1`` failure).
  - Passwords are never printed; ``config show`` uses the redacted view.
"""
from __future__ import annotations

import contextlib
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

import typer

from . import _wiring
from .config import ConfigLoadError, MailConfig, dump_config, load_config
from .errors import MailError, ThreadUnsupportedError
from .imap.types import ListResult, MessageSummary, ThreadSummary


app = typer.Typer(help="IMAP/SMTP mail client", no_args_is_help=True)
mailboxes_app = typer.Typer(help="List and create mailboxes", no_args_is_help=True)
draft_app = typer.Typer(help="Save, list and send drafts", no_args_is_help=True)
config_app = typer.Typer(help="Inspect the configuration", no_args_is_help=True)
app.add_typer(mailboxes_app, name="mailboxes")
app.add_typer(draft_app, name="draft")
app.add_typer(config_app, name="config")

LOGGER = logging.getLogger("mailcli.cli")

THREAD_FALLBACK_NOTICE = "Server does not support THREAD; showing messages instead."


@app.callback()
def _root(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
) -> None:
    ctx.obj = {"config_path": config}


def _config(ctx: typer.Context) -> MailConfig:
    path = (ctx.obj or {}).get("config_path")
    return load_config(path)


@contextlib.contextmanager
def _reported(action: str) -> Iterator[None]:
    """Turn known failures into an stderr line and exit code 1."""

    try:
        yield
    except (MailError, ConfigLoadError, OSError) as exc:
        LOGGER.debug("%s failed", action, exc_info=True)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _format_date(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M")


def _format_summary(summary: MessageSummary) -> str:
    marker = " " if summary.seen else "*"
    return f"{summary.uid:>7} {marker} {_format_date(summary.date):<16}  {summary.from_[:30]:<30}  {summary.subject}"


def _format_thread(thread: ThreadSummary) -> str:
    return (
        f"{thread.uid:>7} ({thread.count:>3}) {_format_date(thread.date):<16}  "
        f"{thread.from_[:30]:<30}  {thread.subject}"
    )


def _print_listing(result: ListResult, page: int, page_size: int) -> None:
    for item in result.items:
        if isinstance(item, ThreadSummary):
            typer.echo(_format_thread(item))
        else:
            typer.echo(_format_summary(item))
    pages = max((result.total + page_size - 1) // page_size, 1)
    typer.echo(f"Page {page}/{pages} ({result.total} total)")


def _page_args(config: MailConfig, page: int, page_size: Optional[int]) -> tuple:
    size = page_size if page_size and page_size > 0 else config.defaults.page_size
    return (page if page > 0 else 1), size


def _listing(
    ctx: typer.Context,
    mailbox: str,
    query: Optional[str],
    page: int,
    page_size: Optional[int],
    threads: bool,
) -> None:
    with _reported("list"):
        config = _config(ctx)
        service = _wiring.build_service(config)
        page, size = _page_args(config, page, page_size)
        result = None
        if threads:
            try:
                if query:
                    result = service.search_threads(mailbox, query, page, size)
                else:
                    result = service.list_threads(mailbox, page, size)
            except ThreadUnsupportedError:
                typer.echo(THREAD_FALLBACK_NOTICE, err=True)
        if result is None:
            if query:
                result = service.search_messages(mailbox, query, page, size)
            else:
                result = service.list_messages(mailbox, page, size)
        _print_listing(result, page, size)


_MAILBOX = typer.Option("INBOX", "--mailbox", "-m", help="Mailbox to operate on")
_PAGE = typer.Option(1, "--page", "-p", help="Page number, 1 is newest")
_PAGE_SIZE = typer.Option(None, "--page-size", "-n", help="Messages per page")
_THREADS = typer.Option(False, "--threads", help="Group messages into server-side threads")


@app.command("status")
def status(ctx: typer.Context, mailbox: str = _MAILBOX) -> None:
    """Show message and unseen counts for a mailbox."""

    with _reported("status"):
        result = _wiring.build_service(_config(ctx)).mailbox_status(mailbox)
        typer.echo(f"{result.mailbox}: {result.messages} messages, {result.unseen} unseen")


@mailboxes_app.command("list")
def mailboxes_list(ctx: typer.Context) -> None:
    """List every mailbox on the server."""

    with _reported("mailboxes list"):
        for entry in _wiring.build_service(_config(ctx)).list_mailboxes():
            typer.echo(entry.name)


@mailboxes_app.command("create")
def mailboxes_create(ctx: typer.Context, name: str = typer.Argument(..., help="Mailbox name")) -> None:
    """Create a mailbox."""

    with _reported("mailboxes create"):
        _wiring.build_service(_config(ctx)).create_mailbox(name)
        typer.echo(f"Created {name}")


@app.command("list")
def list_messages(
    ctx: typer.Context,
    mailbox: str = _MAILBOX,
    page: int = _PAGE,
    page_size: Optional[int] = _PAGE_SIZE,
    threads: bool = _THREADS,
) -> None:
    """List messages newest first."""

    _listing(ctx, mailbox, None, page, page_size, threads)


@app.command("search")
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Text to search in headers and body"),
    mailbox: str = _MAILBOX,
    page: int = _PAGE,
    page_size: Optional[int] = _PAGE_SIZE,
    threads: bool = _THREADS,
) -> None:
    """Search messages by text, newest first."""

    _listing(ctx, mailbox, query, page, page_size, threads)


@app.command("read")
def read(ctx: typer.Context, uid: int = typer.Argument(..., help="Message UID"), mailbox: str = _MAILBOX) -> None:
    """Print the headers, text body and attachment names of a message."""

    with _reported("read"):
        detail = _wiring.build_service(_config(ctx)).read_message(mailbox, uid)
        typer.echo(f"From: {detail.from_}")
        typer.echo(f"To: {detail.to}")
        if detail.cc:
            typer.echo(f"Cc: {detail.cc}")
        typer.echo(f"Date: {_format_date(detail.date)}")
        typer.echo(f"Subject: {detail.subject}")
        typer.echo("")
        typer.echo(detail.body)
        if detail.attachments:
            typer.echo("")
            typer.echo("Attachments:")
            for name in detail.attachments:
                typer.echo(f"  {name}")


_TO = typer.Option(None, "--to", help="Comma-separated recipients")
_CC = typer.Option(None, "--cc", help="Comma-separated Cc recipients")
_BCC = typer.Option(None, "--bcc", help="Comma-separated Bcc recipients")
_FROM = typer.Option(None, "--from", help="Sender address, defaults to auth.username")
_REPLY_TO = typer.Option(None, "--reply-to", help="Reply-To address")
_SUBJECT = typer.Option(None, "--subject", "-s", help="Subject line")
_BODY = typer.Option(None, "--body", "-b", help="Plain-text body")
_BODY_FILE = typer.Option(None, "--body-file", help="Read the body from a file, '-' for stdin")
_HTML = typer.Option(None, "--html", help="HTML body")
_ATTACH = typer.Option(None, "--attach", "-a", help="File to attach, repeatable")
_REPLY_UID = typer.Option(None, "--reply-uid", help="UID of the message being replied to")
_REPLY_MAILBOX = typer.Option(_wiring.DEFAULT_REPLY_MAILBOX, "--reply-mailbox", help="Mailbox of the replied message")
_REPLY_ALL = typer.Option(False, "--reply-all", help="Reply to every recipient")
_QUOTE = typer.Option(False, "--quote", help="Quote the original message")


def _outgoing(
    ctx: typer.Context,
    *,
    to: Optional[str],
    cc: Optional[str],
    bcc: Optional[str],
    sender: Optional[str],
    reply_to: Optional[str],
    subject: Optional[str],
    body: Optional[str],
    body_file: Optional[str],
    html: Optional[str],
    attach: Optional[List[Path]],
    reply_uid: Optional[str],
    reply_mailbox: str,
    reply_all: bool,
    quote: bool,
) -> tuple:
    uid = _wiring.parse_reply_uid(reply_uid)
    _wiring.check_reply_flags(uid, reply_all, quote)
    text = _wiring.load_body(body, body_file)
    config = _config(ctx)
    outgoing = _wiring.Outgoing(
        from_=sender or config.auth.username,
        to=_wiring.split_list(to),
        cc=_wiring.split_list(cc),
        bcc=_wiring.split_list(bcc),
        reply_to=(reply_to or "").strip(),
        subject=subject or "",
        body=text,
        html_body=html or "",
        attachments=list(attach or []),
    )
    service = None
    if uid is not None:
        service = _wiring.build_service(config)
        _wiring.prepare_reply(
            service,
            outgoing,
            uid=uid,
            mailbox=reply_mailbox,
            reply_all=reply_all,
            quote=quote,
        )
    return config, service, outgoing


@app.command("send")
def send(
    ctx: typer.Context,
    to: Optional[str] = _TO,
    cc: Optional[str] = _CC,
    bcc: Optional[str] = _BCC,
    sender: Optional[str] = _FROM,
    reply_to: Optional[str] = _REPLY_TO,
    subject: Optional[str] = _SUBJECT,
    body: Optional[str] = _BODY,
    body_file: Optional[str] = _BODY_FILE,
    html: Optional[str] = _HTML,
    attach: Optional[List[Path]] = _ATTACH,
    reply_uid: Optional[str] = _REPLY_UID,
    reply_mailbox: str = _REPLY_MAILBOX,
    reply_all: bool = _REPLY_ALL,
    quote: bool = _QUOTE,
) -> None:
    """Compose and send a message, optionally as a reply."""

    with _reported("send"):
        config, _, outgoing = _outgoing(
            ctx,
            to=to,
            cc=cc,
            bcc=bcc,
            sender=sender,
            reply_to=reply_to,
            subject=subject,
            body=body,
            body_file=body_file,
            html=html,
            attach=attach,
            reply_uid=reply_uid,
            reply_mailbox=reply_mailbox,
            reply_all=reply_all,
            quote=quote,
        )
        recipients = _wiring.send_outgoing(config, outgoing)
        typer.echo(f"Sent to {', '.join(recipients)}")


@draft_app.command("save")
def draft_save(
    ctx: typer.Context,
    to: Optional[str] = _TO,
    cc: Optional[str] = _CC,
    bcc: Optional[str] = _BCC,
    sender: Optional[str] = _FROM,
    reply_to: Optional[str] = _REPLY_TO,
    subject: Optional[str] = _SUBJECT,
    body: Optional[str] = _BODY,
    body_file: Optional[str] = _BODY_FILE,
    html: Optional[str] = _HTML,
    attach: Optional[List[Path]] = _ATTACH,
    reply_uid: Optional[str] = _REPLY_UID,
    reply_mailbox: str = _REPLY_MAILBOX,
    reply_all: bool = _REPLY_ALL,
    quote: bool = _QUOTE,
) -> None:
    """Compose a message and store it in the drafts mailbox."""

    with _reported("draft save"):
        config, service, outgoing = _outgoing(
            ctx,
            to=to,
            cc=cc,
            bcc=bcc,
            sender=sender,
            reply_to=reply_to,
            subject=subject,
            body=body,
            body_file=body_file,
            html=html,
            attach=attach,
            reply_uid=reply_uid,
            reply_mailbox=reply_mailbox,
            reply_all=reply_all,
            quote=quote,
        )
        service = service or _wiring.build_service(config)
        mailbox = _wiring.save_outgoing(service, outgoing)
        typer.echo(f"Draft saved to {mailbox}")


@draft_app.command("list")
def draft_list(ctx: typer.Context, page: int = _PAGE, page_size: Optional[int] = _PAGE_SIZE) -> None:
    """List drafts newest first."""

    with _reported("draft list"):
        config = _config(ctx)
        page, size = _page_args(config, page, page_size)
        result = _wiring.build_service(config).list_drafts(page, size)
        _print_listing(result, page, size)


@draft_app.command("send")
def draft_send(
    ctx: typer.Context,
    uid: int = typer.Argument(..., help="Draft UID"),
    keep: bool = typer.Option(False, "--keep", help="Keep the draft after sending"),
) -> None:
    """Send a stored draft and remove it from the drafts mailbox."""

    with _reported("draft send"):
        config = _config(ctx)
        service = _wiring.build_service(config)
        recipients = _wiring.send_draft(config, service, uid, keep=keep)
        typer.echo(f"Sent to {', '.join(recipients)}")


@app.command("delete")
def delete(ctx: typer.Context, uid: int = typer.Argument(..., help="Message UID"), mailbox: str = _MAILBOX) -> None:
    """Delete a message and expunge the mailbox."""

    with _reported("delete"):
        _wiring.build_service(_config(ctx)).delete_message(mailbox, uid)
        typer.echo(f"Deleted {uid}")


@app.command("move")
def move(
    ctx: typer.Context,
    uid: int = typer.Argument(..., help="Message UID"),
    destination: str = typer.Argument(..., help="Target mailbox"),
    mailbox: str = _MAILBOX,
) -> None:
    """Move a message to another mailbox."""

    with _reported("move"):
        _wiring.build_service(_config(ctx)).move_message(mailbox, uid, destination)
        typer.echo(f"Moved {uid} to {destination}")


@app.command("tag")
def tag(
    ctx: typer.Context,
    uid: int = typer.Argument(..., help="Message UID"),
    name: str = typer.Argument(..., help="Keyword flag to add"),
    mailbox: str = _MAILBOX,
) -> None:
    """Add a keyword flag to a message."""

    with _reported("tag"):
        _wiring.build_service(_config(ctx)).add_tag(mailbox, uid, name)
        typer.echo(f"Tagged {uid} with {name}")


@app.command("attachments")
def attachments(
    ctx: typer.Context,
    uid: int = typer.Argument(..., help="Message UID"),
    mailbox: str = _MAILBOX,
    directory: Path = typer.Option(Path("."), "--dir", "-d", help="Target directory"),
) -> None:
    """Save every attachment of a message into a directory."""

    with _reported("attachments"):
        saved = _wiring.build_service(_config(ctx)).download_attachments(mailbox, uid, directory)
        if not saved:
            typer.echo("No attachments")
        for path in saved:
            typer.echo(str(path))


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Print the configuration with the password masked."""

    with _reported("config show"):
        typer.echo(dump_config(_config(ctx)), nl=False)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover - module execution
    main()

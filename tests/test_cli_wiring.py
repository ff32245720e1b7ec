"""CLI wiring tests ensuring Typer commands integrate with the mail services.

What:
  Validate the ``list``, ``search``, ``read``, ``send``, ``draft``, mutation
  and ``config`` commands against the in-memory IMAP backend, covering
  success output, the THREAD fallback notice and error exit codes.

Why:
  The CLI is the only surface users touch; regression tests prevent accidental
  breaks in option parsing, error reporting or the order of validation and
  network contact.

How:
  Use :class:`typer.testing.CliRunner` to invoke the commands with the fake
  IMAP backend installed and SMTP delivery replaced by a recorder.
"""
from __future__ import annotations

from typing import Any, List

import pytest
from typer.testing import CliRunner

from fakes import make_message
from mailcli.cli import THREAD_FALLBACK_NOTICE, app


runner = CliRunner()


@pytest.fixture
def sent(monkeypatch: pytest.MonkeyPatch) -> List[Any]:
    """Capture SMTP submissions made through the wiring layer."""

    deliveries: List[Any] = []
    monkeypatch.setattr(
        "mailcli._wiring.send_message",
        lambda settings, sender, recipients, payload: deliveries.append((sender, list(recipients), payload)),
    )
    return deliveries


def _seed(backend, count: int) -> None:
    for index in range(1, count + 1):
        backend.add("INBOX", make_message(subject=f"Message {index}"))


def test_list_prints_page_footer(imap_backend) -> None:
    """``mailcli list`` prints the newest page and a footer."""

    _seed(imap_backend, 3)
    result = runner.invoke(app, ["list", "--page-size", "2"])

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert "Message 3" in lines[0]
    assert "Message 2" in lines[1]
    assert lines[-1] == "Page 1/2 (3 total)"


def test_threads_fall_back_to_messages(imap_backend) -> None:
    """Without THREAD support the command notices and lists messages."""

    imap_backend.capability_set = (b"IMAP4REV1",)
    _seed(imap_backend, 2)
    result = runner.invoke(app, ["list", "--threads"])

    assert result.exit_code == 0, result.output
    assert THREAD_FALLBACK_NOTICE in result.output
    assert "Page 1/1 (2 total)" in result.output


def test_search_threads_show_counts(imap_backend) -> None:
    _seed(imap_backend, 3)
    imap_backend.thread_response = ((1, 3), (2,))
    result = runner.invoke(app, ["search", "Hi", "--threads"])

    assert result.exit_code == 0, result.output
    assert "(  2)" in result.output
    assert "Page 1/1 (2 total)" in result.output


def test_read_prints_headers_and_body(imap_backend) -> None:
    imap_backend.add("INBOX", make_message(subject="Greetings", body="Body text"))
    result = runner.invoke(app, ["read", "1"])

    assert result.exit_code == 0, result.output
    assert "Subject: Greetings" in result.output
    assert "Body text" in result.output


def test_read_missing_message_exits_one(imap_backend) -> None:
    result = runner.invoke(app, ["read", "99"])
    assert result.exit_code == 1
    assert "Error: message 99 not found in INBOX" in result.output


def test_reply_flags_require_reply_uid(imap_backend, sent) -> None:
    """Validation fails before any server contact."""

    result = runner.invoke(app, ["send", "--to", "bob@example.test", "--body", "x", "--reply-all"])

    assert result.exit_code == 1
    assert "--reply-all and --quote require --reply-uid" in result.output
    assert imap_backend.calls == []
    assert sent == []


def test_send_reports_recipients(imap_backend, sent) -> None:
    result = runner.invoke(
        app,
        ["send", "--to", "bob@example.test", "--bcc", "eve@example.test", "-s", "Hi", "-b", "hello"],
    )

    assert result.exit_code == 0, result.output
    assert "Sent to bob@example.test, eve@example.test" in result.output
    sender, recipients, payload = sent[0]
    assert sender == "alice@example.test"
    assert b"eve@example.test" not in payload


def test_send_and_draft_save_emit_reply_to(imap_backend, sent) -> None:
    """``--reply-to`` reaches the Reply-To header of sent and saved messages."""

    result = runner.invoke(
        app, ["send", "--to", "bob@example.test", "--reply-to", "team@example.test", "-b", "hi"]
    )
    assert result.exit_code == 0, result.output
    assert b"Reply-To: team@example.test\r\n" in sent[0][2]

    saved = runner.invoke(
        app, ["draft", "save", "--to", "bob@example.test", "--reply-to", "team@example.test", "-b", "x"]
    )
    assert saved.exit_code == 0, saved.output
    assert b"Reply-To: team@example.test\r\n" in imap_backend.mailboxes["Drafts"][1].raw


def test_send_reply_derives_recipients(imap_backend, sent) -> None:
    imap_backend.add("INBOX", make_message(subject="Plans", message_id="<m1@example.test>"))
    result = runner.invoke(app, ["send", "--reply-uid", "1", "--body", "ok"])

    assert result.exit_code == 0, result.output
    _, recipients, payload = sent[0]
    assert recipients == ["bob@example.test"]
    assert b"In-Reply-To: <m1@example.test>" in payload
    assert b"Subject: Re: Plans" in payload


def test_draft_save_then_send(imap_backend, sent) -> None:
    saved = runner.invoke(app, ["draft", "save", "--to", "bob@example.test", "--bcc", "eve@example.test", "-b", "x"])
    assert saved.exit_code == 0, saved.output
    assert "Draft saved to Drafts" in saved.output

    listed = runner.invoke(app, ["draft", "list"])
    assert "Page 1/1 (1 total)" in listed.output

    result = runner.invoke(app, ["draft", "send", "1"])
    assert result.exit_code == 0, result.output
    assert "Sent to bob@example.test, eve@example.test" in result.output
    assert imap_backend.mailboxes["Drafts"] == {}


def test_mutation_commands(imap_backend, tmp_path) -> None:
    _seed(imap_backend, 3)

    assert "Tagged 1 with Urgent" in runner.invoke(app, ["tag", "1", "Urgent"]).output
    assert "Created Archive" in runner.invoke(app, ["mailboxes", "create", "Archive"]).output
    assert "Moved 2 to Archive" in runner.invoke(app, ["move", "2", "Archive"]).output
    assert "Deleted 3" in runner.invoke(app, ["delete", "3"]).output
    assert list(imap_backend.mailboxes["INBOX"]) == [1]
    assert "No attachments" in runner.invoke(app, ["attachments", "1", "--dir", str(tmp_path)]).output

    status = runner.invoke(app, ["status"])
    assert "INBOX: 1 messages, 1 unseen" in status.output


def test_config_show_masks_password() -> None:
    result = runner.invoke(app, ["config", "show"])

    assert result.exit_code == 0, result.output
    assert "password: '****'" in result.output
    assert "hunter2" not in result.output


def test_missing_config_exits_one(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("MAILCLI_CONFIG_PATH", str(tmp_path / "absent.yaml"))
    result = runner.invoke(app, ["list"])

    assert result.exit_code == 1
    assert "Error: Unable to locate config.yaml" in result.output

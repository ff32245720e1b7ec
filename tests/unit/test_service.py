"""
Module: tests/unit/test_service.py

What:
    Exercise :class:`MailService` end to end against the in-memory IMAP
    backend: listing, search, threads, reading, raw fetch and mutations.

Why:
    The service owns the session lifecycle and the ordering guarantees that
    users observe. The fake backend deliberately returns search and fetch
    results out of order to prove the final sort.

How:
    Seed the backend with simple messages, call the service, and assert on
    both the returned values and the recorded backend calls.

Invariants & Safety Rules:
    - Every operation logs out of its session.
    - Listing selects mailboxes read-only and issues no fetch for empty pages.
"""

import pytest
from imapclient.exceptions import IMAPClientError

from fakes import make_message
from mailcli.errors import MessageNotFoundError, ThreadUnsupportedError, TransportError, ValidationError


def _seed(backend, count, mailbox="INBOX"):
    return [
        backend.add(mailbox, make_message(subject=f"Message {index}", body=f"body {index}"))
        for index in range(1, count + 1)
    ]


def test_list_messages_pages_newest_first(service, imap_backend):
    _seed(imap_backend, 7)
    first = service.list_messages("INBOX", page=1, page_size=3)
    second = service.list_messages("INBOX", page=2, page_size=3)
    third = service.list_messages("INBOX", page=3, page_size=3)

    assert [item.uid for item in first.items] == [7, 6, 5]
    assert [item.uid for item in second.items] == [4, 3, 2]
    assert [item.uid for item in third.items] == [1]
    assert first.total == second.total == third.total == 7
    assert first.items[0].subject == "Message 7"
    assert first.items[0].from_ == "Bob <bob@example.test>"
    assert first.items[0].size > 0
    assert ("select_folder", ("INBOX", True)) in imap_backend.calls
    assert imap_backend.logged_out


def test_list_messages_defaults_non_positive_paging(service, imap_backend):
    _seed(imap_backend, 25)
    result = service.list_messages("INBOX", page=0, page_size=0)
    assert len(result.items) == 20
    assert result.items[0].uid == 25
    assert result.items[-1].uid == 6


def test_page_beyond_data_skips_fetch(service, imap_backend):
    _seed(imap_backend, 2)
    result = service.list_messages("INBOX", page=5, page_size=10)
    assert result.items == []
    assert result.total == 2
    assert "fetch" not in imap_backend.call_names()


def test_search_messages_uses_text_criteria(service, imap_backend):
    imap_backend.add("INBOX", make_message(subject="Invoice March", body="pay"))
    imap_backend.add("INBOX", make_message(subject="Lunch", body="noon"))
    imap_backend.add("INBOX", make_message(subject="Invoice April", body="pay"))
    result = service.search_messages("INBOX", "invoice", page=1, page_size=10)
    assert [item.uid for item in result.items] == [3, 1]
    assert result.total == 2
    assert ("search", ["TEXT", "invoice"]) in imap_backend.calls


def test_summary_flags_and_seen(service, imap_backend):
    imap_backend.add("INBOX", make_message(), flags=[b"\\Seen"])
    imap_backend.add("INBOX", make_message())
    items = service.list_messages("INBOX").items
    assert items[0].uid == 2 and not items[0].seen
    assert items[1].flags == ("\\Seen",) and items[1].seen


def test_fetch_failure_becomes_transport_error(service, imap_backend):
    _seed(imap_backend, 3)
    imap_backend.fetch_error = IMAPClientError("fetch failed")
    with pytest.raises(TransportError):
        service.list_messages("INBOX")
    assert imap_backend.logged_out


def test_missing_mailbox_becomes_transport_error(service, imap_backend):
    with pytest.raises(TransportError):
        service.list_messages("Nope")


def test_list_threads_uses_newest_member_as_representative(service, imap_backend):
    _seed(imap_backend, 6)
    imap_backend.thread_response = ((1, (3, 5)), (2,), (4, 6))
    result = service.list_threads("INBOX", page=1, page_size=2)
    assert result.total == 3
    assert [(thread.uid, thread.count) for thread in result.items] == [(6, 2), (5, 3)]
    assert result.items[1].uids == (1, 3, 5)
    assert result.items[0].subject == "Message 6"

    older = service.list_threads("INBOX", page=2, page_size=2)
    assert [(thread.uid, thread.count) for thread in older.items] == [(2, 1)]


def test_search_threads_passes_criteria(service, imap_backend):
    _seed(imap_backend, 2)
    imap_backend.thread_response = ((1, 2),)
    service.search_threads("INBOX", "body", page=1, page_size=5)
    assert ("thread", ("REFERENCES", ["TEXT", "body"], "UTF-8")) in imap_backend.calls


def test_list_threads_unsupported_propagates(service, imap_backend):
    imap_backend.capability_set = (b"IMAP4REV1",)
    with pytest.raises(ThreadUnsupportedError):
        service.list_threads("INBOX")
    assert imap_backend.logged_out


def test_read_message_extracts_first_plain_part_and_attachment_names(service, imap_backend):
    raw = (
        b"From: Carol <carol@example.test>\r\n"
        b"To: alice@example.test\r\n"
        b"Subject: Report\r\n"
        b"Date: Tue, 07 Jan 2025 09:30:00 +0000\r\n"
        b"MIME-Version: 1.0\r\n"
        b'Content-Type: multipart/mixed; boundary="b1"\r\n'
        b"\r\n"
        b"--b1\r\n"
        b'Content-Type: text/plain; charset="utf-8"\r\n'
        b"\r\n"
        b"See attached.\r\n"
        b"--b1\r\n"
        b'Content-Type: text/plain; charset="utf-8"\r\n'
        b"\r\n"
        b"Second text part.\r\n"
        b"--b1\r\n"
        b"Content-Type: application/pdf\r\n"
        b'Content-Disposition: attachment; filename="report.pdf"\r\n'
        b"Content-Transfer-Encoding: base64\r\n"
        b"\r\n"
        b"JVBERi0=\r\n"
        b"--b1\r\n"
        b"Content-Type: application/octet-stream\r\n"
        b"Content-Disposition: attachment\r\n"
        b"Content-Transfer-Encoding: base64\r\n"
        b"\r\n"
        b"AAEC\r\n"
        b"--b1--\r\n"
    )
    uid = imap_backend.add("INBOX", raw)
    detail = service.read_message("INBOX", uid)
    assert detail.body.strip() == "See attached."
    assert detail.attachments == ["report.pdf"]
    assert detail.subject == "Report"
    assert detail.from_ == "Carol <carol@example.test>"
    assert detail.to == "alice@example.test"
    assert detail.date.year == 2025


def test_read_and_fetch_raw_missing_uid(service, imap_backend):
    with pytest.raises(MessageNotFoundError):
        service.read_message("INBOX", 42)
    with pytest.raises(LookupError):
        service.fetch_raw("INBOX", 42)


def test_fetch_raw_returns_exact_bytes(service, imap_backend):
    raw = make_message(subject="Raw")
    uid = imap_backend.add("INBOX", raw)
    assert service.fetch_raw("INBOX", uid) == raw


def test_delete_message_flags_and_expunges(service, imap_backend):
    uids = _seed(imap_backend, 2)
    service.delete_message("INBOX", uids[0])
    assert list(imap_backend.mailboxes["INBOX"]) == [uids[1]]
    assert ("add_flags", ((uids[0],), ("\\Deleted",), True)) in imap_backend.calls
    assert ("select_folder", ("INBOX", False)) in imap_backend.calls


def test_move_message_uses_move_when_available(service, imap_backend):
    imap_backend.create_folder("Archive")
    uid = _seed(imap_backend, 1)[0]
    service.move_message("INBOX", uid, "Archive")
    assert imap_backend.mailboxes["INBOX"] == {}
    assert len(imap_backend.mailboxes["Archive"]) == 1
    assert "copy" not in imap_backend.call_names()


def test_move_message_falls_back_to_copy_delete_expunge(service, imap_backend):
    imap_backend.capability_set = (b"IMAP4REV1",)
    imap_backend.create_folder("Archive")
    uid = _seed(imap_backend, 1)[0]
    service.move_message("INBOX", uid, "Archive")
    assert imap_backend.mailboxes["INBOX"] == {}
    assert len(imap_backend.mailboxes["Archive"]) == 1
    names = imap_backend.call_names()
    assert names.index("copy") < names.index("add_flags") < names.index("expunge")


def test_add_tag_and_validation(service, imap_backend):
    uid = _seed(imap_backend, 1)[0]
    service.add_tag("INBOX", uid, "Important")
    assert b"Important" in imap_backend.mailboxes["INBOX"][uid].flags
    with pytest.raises(ValidationError):
        service.add_tag("INBOX", uid, "  ")


def test_save_draft_appends_with_draft_flag(service, imap_backend):
    target = service.save_draft(make_message(subject="Draft"))
    assert target == "Drafts"
    record = imap_backend.mailboxes["Drafts"][1]
    assert record.flags == [b"\\Draft"]
    assert service.list_drafts().total == 1


def test_status_and_mailbox_management(service, imap_backend):
    imap_backend.add("INBOX", make_message(), flags=[b"\\Seen"])
    imap_backend.add("INBOX", make_message())
    status = service.mailbox_status("INBOX")
    assert (status.messages, status.unseen) == (2, 1)

    service.create_mailbox("Projects")
    names = [entry.name for entry in service.list_mailboxes()]
    assert "Projects" in names
    with pytest.raises(ValidationError):
        service.create_mailbox(" ")


def test_download_attachments_writes_files(service, imap_backend, tmp_path):
    raw = (
        b"From: a@example.test\r\n"
        b"Subject: files\r\n"
        b'Content-Type: multipart/mixed; boundary="x"\r\n'
        b"\r\n"
        b"--x\r\n"
        b"Content-Type: text/plain\r\n"
        b"\r\n"
        b"hi\r\n"
        b"--x\r\n"
        b"Content-Type: text/plain\r\n"
        b'Content-Disposition: attachment; filename="notes.txt"\r\n'
        b"\r\n"
        b"note body\r\n"
        b"--x--\r\n"
    )
    uid = imap_backend.add("INBOX", raw)
    saved = service.download_attachments("INBOX", uid, tmp_path / "out")
    assert [path.name for path in saved] == ["notes.txt"]
    assert saved[0].read_bytes().startswith(b"note body")

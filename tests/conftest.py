"""Pytest configuration shared by every suite.

What:
  Put the ``mailcli/src`` tree and the unit fakes on ``sys.path``, point the
  configuration loader at a canned ``config.yaml`` and offer a fixture that
  swaps ``imapclient.IMAPClient`` for the in-memory backend.

Why:
  Tests must import the source tree rather than an installed wheel, must not
  read the developer's own configuration, and must never open a socket.

How:
  Insert the paths at import time, then use :class:`pytest.MonkeyPatch` to set
  ``MAILCLI_CONFIG_PATH`` and reset the loader cache around every test.

Interfaces:
  :func:`mail_config` (autouse), :func:`imap_backend`.
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "mailcli" / "src"
if SRC_DIR.exists():
    sys.path.insert(0, str(SRC_DIR))
UNIT_DIR = Path(__file__).resolve().parent / "unit"
if str(UNIT_DIR) not in sys.path:
    sys.path.insert(0, str(UNIT_DIR))

import pytest

from fakes import FakeImapBackend
from mailcli.config.loader import reset_config

CONFIG_PATH = Path(__file__).resolve().parent / "data" / "config.yaml"


@pytest.fixture(autouse=True)
def mail_config(monkeypatch: pytest.MonkeyPatch):
    """Apply the canned configuration file for every test."""

    monkeypatch.setenv("MAILCLI_CONFIG_PATH", str(CONFIG_PATH))
    monkeypatch.delenv("MAILCLI_AUTH_PASSWORD", raising=False)
    reset_config()
    try:
        yield CONFIG_PATH
    finally:
        reset_config()


@pytest.fixture
def imap_backend(monkeypatch: pytest.MonkeyPatch) -> FakeImapBackend:
    """Install a fresh :class:`FakeImapBackend` behind ``MailSession``.

    Every session opened during the test talks to the same backend so state
    persists across operations, as it would on a real server.
    """

    backend = FakeImapBackend()
    monkeypatch.setattr("mailcli.imap.client.IMAPClient", lambda host, **kwargs: backend)
    return backend

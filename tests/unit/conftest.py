"""Pytest fixtures for unit tests that drive :class:`MailService`."""

import pytest

from mailcli.imap.client import ImapConfig
from mailcli.imap.service import MailService


@pytest.fixture
def service(imap_backend) -> MailService:
    """Return a :class:`MailService` whose sessions use the fake backend."""

    config = ImapConfig(host="localhost", username="user", password="pass")
    return MailService(config)

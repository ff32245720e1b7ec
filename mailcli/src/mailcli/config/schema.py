"""Pydantic models describing the mailcli configuration document."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ImapSettings(BaseModel):
    """IMAP server endpoint and TLS mode."""

    model_config = ConfigDict(extra="forbid")

    host: str = ""
    port: int = Field(default=993, gt=0, lt=65536)
    tls: bool = True
    starttls: bool = False
    insecure_skip_verify: bool = False
    timeout: Optional[float] = Field(default=None, gt=0)


class SmtpSettings(BaseModel):
    """SMTP submission endpoint and TLS mode."""

    model_config = ConfigDict(extra="forbid")

    host: str = ""
    port: int = Field(default=587, gt=0, lt=65536)
    tls: bool = False
    starttls: bool = True
    insecure_skip_verify: bool = False
    timeout: Optional[float] = Field(default=None, gt=0)


class AuthSettings(BaseModel):
    """Credentials shared by the IMAP and SMTP sessions."""

    model_config = ConfigDict(extra="forbid")

    username: str = ""
    password: str = ""


class DefaultsSettings(BaseModel):
    """Client-side defaults."""

    model_config = ConfigDict(extra="forbid")

    drafts_mailbox: str = "Drafts"
    page_size: int = Field(default=20, gt=0)


class MailConfig(BaseModel):
    """Top-level ``config.yaml`` model."""

    model_config = ConfigDict(extra="forbid")

    imap: ImapSettings = Field(default_factory=ImapSettings)
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    defaults: DefaultsSettings = Field(default_factory=DefaultsSettings)

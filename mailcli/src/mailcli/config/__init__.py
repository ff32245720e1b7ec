"""mailcli configuration package.

What:
  Provide a single import surface for configuration discovery, validation and
  redaction.

Why:
  Callers (mainly the CLI) should not depend on the module layout; services
  receive already-resolved settings objects.

Interfaces:
  - load_config / get_config / reset_config: Resolve and cache ``config.yaml``.
  - validate_imap / validate_smtp: Check session prerequisites.
  - redact / dump_config: Produce password-free views.
  - MailConfig and section models.
"""

from .loader import (
    ConfigError,
    ConfigLoadError,
    dump_config,
    get_config,
    load_config,
    redact,
    reset_config,
    validate_imap,
    validate_smtp,
)
from .schema import AuthSettings, DefaultsSettings, ImapSettings, MailConfig, SmtpSettings

__all__ = [
    "AuthSettings",
    "ConfigError",
    "ConfigLoadError",
    "DefaultsSettings",
    "ImapSettings",
    "MailConfig",
    "SmtpSettings",
    "dump_config",
    "get_config",
    "load_config",
    "redact",
    "reset_config",
    "validate_imap",
    "validate_smtp",
]

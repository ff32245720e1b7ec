"""SMTP delivery."""

from .sender import SmtpConfig, send_message

__all__ = ["SmtpConfig", "send_message"]

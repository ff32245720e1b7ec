"""Message composition, reply derivation and attachment extraction."""

from .attachments import save_attachments
from .compose import BCC_HEADER, ComposeInput, build_message, extract_recipients, strip_private_headers
from .reply import (
    ReplyInfo,
    apply_quote,
    build_reply_all_recipients,
    build_reply_headers,
    build_reply_recipients,
    derive_recipients,
    extract_reply_info,
    reply_subject,
)

__all__ = [
    "BCC_HEADER",
    "ComposeInput",
    "ReplyInfo",
    "apply_quote",
    "build_message",
    "build_reply_all_recipients",
    "build_reply_headers",
    "build_reply_recipients",
    "derive_recipients",
    "extract_recipients",
    "extract_reply_info",
    "reply_subject",
    "save_attachments",
    "strip_private_headers",
]

"""Shared helpers for logging and MIME traversal."""

from .logging import JsonLogger, get_logger

__all__ = ["JsonLogger", "get_logger"]

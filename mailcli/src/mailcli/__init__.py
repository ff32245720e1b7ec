"""mailcli: IMAP/SMTP mail client core."""

__version__ = "0.1.0"

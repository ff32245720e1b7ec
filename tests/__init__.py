"""Test package marker for the mailcli suites.

What:
  Marks ``tests`` as a package so pytest resolves ``tests.test_cli_wiring``
  unambiguously next to the ``unit`` and ``e2e`` directories.

How:
  The file exposes no symbols. Shared fixtures live in ``tests/conftest.py``.
"""

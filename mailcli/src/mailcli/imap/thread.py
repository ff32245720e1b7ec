"""Capability-gated ``UID THREAD`` negotiation and response flattening.

What:
  Pick a threading algorithm from the server's ``THREAD=<ALG>`` capabilities,
  run ``UID THREAD`` and turn the nested reply tree into flat UID groups.

Why:
  Threading is an optional server extension. Callers need a recognisable
  "unsupported" outcome so they can fall back to a plain message listing
  instead of failing.

How:
  :class:`ThreadNegotiator` walks ``IDLE -> CAPABILITY_CHECKED ->
  ALGORITHM_CHOSEN -> EXECUTED`` or ends in ``UNSUPPORTED``. The response is a
  tree of nested sequences whose leaves are UIDs; each top-level node is
  flattened depth-first and de-duplicated in first-seen order.

Interfaces:
  :data:`PREFERRED_ALGORITHMS`, :func:`advertised_algorithms`,
  :func:`select_algorithm`, :func:`flatten_thread`,
  :func:`parse_thread_response`, :class:`ThreadNegotiator`.

Invariants & Safety:
  - No command is sent when no algorithm is advertised.
  - Every returned group is non-empty and free of duplicate UIDs.
"""
from __future__ import annotations

import enum
from typing import Any, Iterable, List, Optional, Sequence

from imapclient.exceptions import IMAPClientError

from ..errors import THREAD_COMMAND_FAILED, THREAD_NO_ALGORITHM, ThreadUnsupportedError
from ..utils.logging import get_logger
from .client import Criteria, MailSession


LOGGER = get_logger("mailcli.imap.thread")

PREFERRED_ALGORITHMS = ("REFERENCES", "REFS", "ORDEREDSUBJECT", "ORDERED-SUBJECT")
DEFAULT_CHARSET = "UTF-8"
_PREFIX = "THREAD="


class ThreadState(enum.Enum):
    IDLE = "idle"
    CAPABILITY_CHECKED = "capability-checked"
    ALGORITHM_CHOSEN = "algorithm-chosen"
    EXECUTED = "executed"
    UNSUPPORTED = "unsupported"


def advertised_algorithms(capabilities: Iterable[Any]) -> List[str]:
    """Return the upper-case algorithm names behind ``THREAD=`` capabilities."""

    found: List[str] = []
    for capability in capabilities:
        if isinstance(capability, bytes):
            capability = capability.decode("ascii", errors="replace")
        name = str(capability).strip().upper()
        if name.startswith(_PREFIX) and len(name) > len(_PREFIX):
            algorithm = name[len(_PREFIX):]
            if algorithm not in found:
                found.append(algorithm)
    return found


def select_algorithm(capabilities: Iterable[Any]) -> Optional[str]:
    """Choose the threading algorithm for a capability set.

    Preference follows :data:`PREFERRED_ALGORITHMS`; any other advertised
    algorithm is chosen by lexicographic order. ``None`` means threading is
    not advertised at all.
    """

    available = advertised_algorithms(capabilities)
    if not available:
        return None
    for preferred in PREFERRED_ALGORITHMS:
        if preferred in available:
            return preferred
    return sorted(available)[0]


def _as_uid(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, str)):
        text = value.decode("ascii", errors="replace") if isinstance(value, bytes) else value
        if text.isdigit():
            return int(text)
    return None


def flatten_thread(node: Any) -> List[int]:
    """Flatten one thread tree into its UIDs, depth-first, duplicates dropped."""

    seen: set = set()
    ordered: List[int] = []

    def visit(item: Any) -> None:
        if item is None:
            return
        uid = _as_uid(item)
        if uid is not None:
            if uid not in seen:
                seen.add(uid)
                ordered.append(uid)
            return
        if isinstance(item, (list, tuple)):
            for child in item:
                visit(child)

    visit(node)
    return ordered


def parse_thread_response(response: Sequence[Any]) -> List[List[int]]:
    """Convert a ``THREAD`` response into one flat UID list per conversation."""

    groups: List[List[int]] = []
    for node in response or ():
        group = flatten_thread(node)
        if group:
            groups.append(group)
    return groups


class ThreadNegotiator:
    """Run the threading negotiation for one open session.

    What:
      Checks capabilities, chooses an algorithm and executes ``UID THREAD``.

    Why:
      Keeping the state explicit lets callers and tests see whether the
      feature was absent or present but rejected.

    How:
      :meth:`run` advances :attr:`state` and raises
      :class:`~mailcli.errors.ThreadUnsupportedError` with ``reason`` set to
      ``no-algorithm`` or ``command-failed``.
    """

    def __init__(self, session: MailSession, *, charset: str = DEFAULT_CHARSET):
        self._session = session
        self._charset = charset or DEFAULT_CHARSET
        self.state = ThreadState.IDLE
        self.algorithm: Optional[str] = None

    def choose(self) -> str:
        """Inspect capabilities and pick the algorithm.

        Raises:
          ThreadUnsupportedError: When no ``THREAD=`` capability exists.
        """

        capabilities = self._session.capabilities()
        self.state = ThreadState.CAPABILITY_CHECKED
        algorithm = select_algorithm(capabilities)
        if algorithm is None:
            self.state = ThreadState.UNSUPPORTED
            raise ThreadUnsupportedError(THREAD_NO_ALGORITHM)
        self.algorithm = algorithm
        self.state = ThreadState.ALGORITHM_CHOSEN
        return algorithm

    def run(self, criteria: Optional[Criteria] = None) -> List[List[int]]:
        """Execute ``UID THREAD`` and return flat, de-duplicated UID groups.

        Args:
          criteria: Search criteria; ``None`` matches every message.

        Raises:
          ThreadUnsupportedError: When no algorithm is advertised or the
            server rejects the command.
        """

        algorithm = self.choose()
        try:
            response = self._session.thread(algorithm, criteria or "ALL", self._charset)
        except IMAPClientError as exc:
            self.state = ThreadState.UNSUPPORTED
            LOGGER.warning("thread_command_failed", algorithm=algorithm, error=str(exc))
            raise ThreadUnsupportedError(THREAD_COMMAND_FAILED, algorithm, str(exc)) from exc
        groups = parse_thread_response(response)
        self.state = ThreadState.EXECUTED
        LOGGER.info("thread_executed", algorithm=algorithm, groups=len(groups))
        return groups

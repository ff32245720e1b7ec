"""Streamed delivery of UID fetch results.

What:
  Run one batched ``UID FETCH`` on a background producer and hand the
  ``(uid, data)`` pairs to the caller through a bounded queue, paired with a
  completion future that carries the producer's outcome.

Why:
  Large windows should be consumed incrementally, yet the operation must never
  return while the producer is still running or hide an error it raised.

How:
  :func:`stream_fetch` starts a daemon thread that fills a :class:`queue.Queue`
  and finishes with a sentinel, resolving a :class:`concurrent.futures.Future`
  with ``None`` or the raised exception. :class:`FetchStream` yields items
  until the sentinel, then :meth:`FetchStream.wait` drains whatever is left
  and joins the future exactly once.

Interfaces:
  :func:`stream_fetch`, :class:`FetchStream`, :func:`collect`.

Invariants & Safety:
  - The queue is always drained before the completion signal is inspected, so
    the producer can never block forever on a full queue.
  - A producer error is re-raised by :meth:`FetchStream.wait` even if some
    items were already delivered; :func:`collect` then discards them.
"""
from __future__ import annotations

import queue
import threading
from concurrent.futures import Future
from typing import Any, Dict, Iterator, List, Sequence, Tuple

from ..utils.logging import get_logger
from .client import MailSession


LOGGER = get_logger("mailcli.imap")


FetchItem = Tuple[int, Dict[bytes, Any]]

DEFAULT_QUEUE_SIZE = 64

_DONE = object()


class FetchStream:
    """Consumer side of a streamed fetch.

    Iterate to receive items, then call :meth:`wait`. Using the stream as a
    context manager calls :meth:`wait` on exit, which covers early exits from
    the loop.
    """

    def __init__(self, items: "queue.Queue[Any]", done: "Future[None]", producer: threading.Thread):
        self._items = items
        self._done = done
        self._producer = producer
        self._exhausted = False
        self._joined = False

    def __iter__(self) -> Iterator[FetchItem]:
        while not self._exhausted:
            item = self._items.get()
            if item is _DONE:
                self._exhausted = True
                break
            yield item

    def _drain(self) -> None:
        while not self._exhausted:
            if self._items.get() is _DONE:
                self._exhausted = True

    def wait(self) -> None:
        """Drain remaining items and re-raise the producer's error, once."""

        if self._joined:
            return
        self._joined = True
        self._drain()
        self._producer.join()
        self._done.result()

    def __enter__(self) -> "FetchStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.wait()
            return
        try:
            self.wait()
        except Exception as producer_exc:  # noqa: BLE001 - primary exception already propagating
            LOGGER.warning("imap_fetch_producer_failed", error=str(producer_exc))


def stream_fetch(
    session: MailSession,
    uids: Sequence[int],
    items: Sequence[str],
    *,
    maxsize: int = DEFAULT_QUEUE_SIZE,
) -> FetchStream:
    """Start fetching ``items`` for ``uids`` and return the consumer handle.

    Args:
      session: Open session with the target mailbox already selected.
      uids: UIDs to fetch in one batched request.
      items: Fetch data items (``ENVELOPE``, ``FLAGS`` ...).
      maxsize: Bound of the delivery queue.

    Returns:
      A :class:`FetchStream` that must be drained and waited on.
    """

    delivery: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
    done: "Future[None]" = Future()

    def produce() -> None:
        try:
            response = session.fetch(uids, items)
            for uid, data in response.items():
                delivery.put((int(uid), data))
        except BaseException as exc:  # noqa: BLE001 - handed to the consumer
            done.set_exception(exc)
        else:
            done.set_result(None)
        finally:
            delivery.put(_DONE)

    producer = threading.Thread(target=produce, name="imap-fetch", daemon=True)
    producer.start()
    return FetchStream(delivery, done, producer)


def collect(session: MailSession, uids: Sequence[int], items: Sequence[str]) -> List[FetchItem]:
    """Fetch ``uids`` through a stream and return every item.

    Raises:
      Whatever the producer raised; partial results are discarded.
    """

    results: List[FetchItem] = []
    with stream_fetch(session, uids, items) as stream:
        for item in stream:
            results.append(item)
    return results

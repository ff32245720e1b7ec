"""Newest-first pagination over a sorted UID result set.

Page 1 holds the highest ``page_size`` UIDs, page 2 the ``page_size`` before
those, and so on. The window depends only on the count and order of the
matching UIDs, never on message sequence numbers.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple, TypeVar


DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20

T = TypeVar("T")


@dataclass(frozen=True)
class Page:
    """Normalised page request."""

    number: int = DEFAULT_PAGE
    size: int = DEFAULT_PAGE_SIZE

    @classmethod
    def of(cls, number: int, size: int) -> "Page":
        """Replace non-positive values with the defaults."""

        return cls(
            number=number if number > 0 else DEFAULT_PAGE,
            size=size if size > 0 else DEFAULT_PAGE_SIZE,
        )


def window(total: int, page: Page) -> Tuple[int, int]:
    """Return the ``[start, end)`` slice bounds for ``page`` over ``total`` items.

    ``start == end`` means the page lies beyond the available data.
    """

    end = total - (page.number - 1) * page.size
    if end <= 0:
        return 0, 0
    end = min(end, total)
    start = max(end - page.size, 0)
    return start, end


def paginate(ascending: Sequence[T], page: Page) -> List[T]:
    """Slice an ascending sequence for ``page``; order is preserved."""

    start, end = window(len(ascending), page)
    return list(ascending[start:end])

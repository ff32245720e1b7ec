"""Search criteria builders for ``UID SEARCH`` and ``UID THREAD``."""
from __future__ import annotations

from typing import List, Optional, Union


Criteria = Union[str, List[str]]


def build_search(query: Optional[str] = None) -> Criteria:
    """Translate a free-text query into ``imapclient`` criteria.

    An empty or blank query matches every message; anything else becomes a
    ``TEXT`` search over headers and body.
    """

    if query is None or not query.strip():
        return "ALL"
    return ["TEXT", query.strip()]

"""Save attachment parts of a raw message to disk with collision-safe names."""
from __future__ import annotations

import os
from pathlib import Path
from typing import List

from ..utils import mime


MAX_SUFFIX_ATTEMPTS = 999


def safe_filename(name: str, fallback: str) -> str:
    """Strip directory components from ``name``; use ``fallback`` if nothing remains."""

    base = os.path.basename(name.replace("\\", "/")) if name else ""
    if base in ("", ".", ".."):
        return fallback
    return base


def unique_path(directory: Path, filename: str) -> Path:
    """Return ``directory/filename`` or the first free ``stem-N.ext`` variant.

    Raises:
      FileExistsError: When every suffix up to :data:`MAX_SUFFIX_ATTEMPTS` is taken.
    """

    candidate = directory / filename
    if not candidate.exists():
        return candidate
    stem, ext = os.path.splitext(filename)
    for index in range(1, MAX_SUFFIX_ATTEMPTS + 1):
        candidate = directory / f"{stem}-{index}{ext}"
        if not candidate.exists():
            return candidate
    raise FileExistsError(f"no free name for {filename} in {directory}")


def save_attachments(raw: bytes, directory: Path) -> List[Path]:
    """Write every attachment part of ``raw`` into ``directory``.

    Parts without a filename are saved as ``attachment-N`` where ``N`` counts
    the files saved so far. Content is written verbatim after transfer
    decoding. ``directory`` is created when missing.

    Returns:
      Paths of the written files in document order.
    """

    directory.mkdir(parents=True, exist_ok=True)
    message = mime.parse_message(raw)
    saved: List[Path] = []
    for part in mime.attachment_parts(message):
        fallback = f"attachment-{len(saved) + 1}"
        filename = safe_filename(part.get_filename() or "", fallback)
        target = unique_path(directory, filename)
        with open(target, "xb") as handle:
            handle.write(mime.part_bytes(part))
        saved.append(target)
    return saved

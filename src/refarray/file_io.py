"""Atomic file writes shared by config persistence and the JSON store."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def write_text_atomic(path: Path, content: str, *, prefix: str = ".tmp-") -> None:
    """Write ``content`` to ``path`` via a temp file in the same directory.

    The temp file is renamed over ``path`` with os.replace(), so readers see
    either the old or the new content, never a partial write.
    """
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix=prefix)
    closed = False
    try:
        os.write(fd, content.encode("utf-8"))
        os.close(fd)
        closed = True
        os.replace(tmp_path, path)
    except BaseException:
        if not closed:
            os.close(fd)
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


__all__ = ["write_text_atomic"]

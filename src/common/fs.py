"""File helpers: atomic text replacement used by the cache and the commit phase."""
from __future__ import annotations

import os
import stat
import tempfile


def atomic_write_text(path: str, text: str, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``text`` using write-to-temp-then-rename.

    The temporary file lives in the destination directory so ``os.replace`` is
    a same-filesystem rename. Newlines are written verbatim. An existing file's
    permission bits are carried over.
    """
    directory = os.path.dirname(os.path.abspath(path))
    mode = None
    try:
        mode = stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        pass

    fd, tmp_path = tempfile.mkstemp(prefix=".", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def read_text(path: str, encoding: str = "utf-8") -> str:
    """Read a file without newline translation."""
    with open(path, "r", encoding=encoding, newline="") as fh:
        return fh.read()

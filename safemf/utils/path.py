#!filepath: safemf/utils/path.py
import os
from pathlib import Path

from safemf.utils.errors import IoError


def encode_path(path: str | Path) -> bytes:
    """
    Filesystem path → bytes for the engine's ``const char *``.

    Paths that cannot cross the C boundary (embedded NUL) are an I/O error.
    """
    raw = os.fsencode(path)
    if b"\0" in raw:
        raise IoError()
    return raw


def require_file(path: str | Path) -> bytes:
    """
    encode_path() + the file MUST exist (checked before the engine sees it).
    """
    raw = encode_path(path)
    if not os.path.isfile(raw):
        raise IoError()
    return raw

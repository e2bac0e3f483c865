from __future__ import annotations
import hashlib, re
from pathlib import Path

from .errors import PatchIOError

HASH_NAME = "sha256"
_CHUNK = 1024 * 1024
_HEX64 = re.compile(r"[0-9a-f]{64}")


def fingerprint(data: bytes) -> str:
    return hashlib.new(HASH_NAME, data).hexdigest()


def fingerprint_file(path: str | Path) -> str:
    """Stream a file through the digest so large binaries never sit in memory."""
    h = hashlib.new(HASH_NAME)
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK), b""):
                h.update(chunk)
    except FileNotFoundError as e:
        raise PatchIOError(f"not found: {path}", path=str(path)) from e
    except OSError as e:
        raise PatchIOError(f"cannot read {path}: {e}", path=str(path)) from e
    return h.hexdigest()


def is_fingerprint(value: object) -> bool:
    return isinstance(value, str) and _HEX64.fullmatch(value) is not None

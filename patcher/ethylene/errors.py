# ethylene/errors.py
from __future__ import annotations


def short_hash(h: str | None) -> str:
    """First 16 hex chars, enough to tell two fingerprints apart in a message."""
    if not h:
        return "<none>"
    return h[:16]


class PatchError(Exception):
    """Base for every failure that aborts a gen/apply run."""

    def __init__(self, message: str, path: str | None = None, action: str | None = None):
        super().__init__(message)
        self.path = path
        self.action = action


class PatchIOError(PatchError):
    """A path could not be read, written or created."""


class MalformedManifest(PatchError):
    pass


class CorruptPatch(PatchError):
    pass


class AlgorithmUnsupported(PatchError):
    def __init__(self, name: str, path: str | None = None):
        super().__init__(f"unknown algorithm {name!r}", path=path, action="patch")
        self.name = name


class BundleLayoutError(PatchError):
    """Two entries would share one file inside the bundle."""


class HashMismatch(PatchError):
    """Pre-image or post-image fingerprint disagreement.

    `stage` is one of "pre-patch", "post-patch", "add" or "pre-delete" so
    the message tells a wrong target version apart from a corrupted bundle.
    """

    def __init__(self, path: str, expected: str | None, actual: str | None,
                 stage: str, action: str | None = None):
        msg = (f"{stage} hash mismatch for {path}\n"
               f"  expected: {short_hash(expected)}\n"
               f"       got: {short_hash(actual)}")
        super().__init__(msg, path=path, action=action)
        self.expected = expected
        self.actual = actual
        self.stage = stage

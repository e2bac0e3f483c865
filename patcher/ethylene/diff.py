from __future__ import annotations
from pathlib import Path

import bsdiff4
import zstandard

from .errors import AlgorithmUnsupported, CorruptPatch

DEFAULT_ALGORITHM = "bsdiff"

# Same long-distance window the zstd CLI patches were built with (--long).
_WINDOW_LOG = 27
_ZSTD_LEVEL = 19
# zstd ignores dictionaries shorter than this, do the same on both sides
_MIN_DICT = 8


class DiffAlgorithm:
    """Delta codec selected by the `algorithm` name stored in a manifest."""
    name: str = ""

    def generate(self, old: bytes, new: bytes) -> bytes:
        raise NotImplementedError

    def apply(self, old: bytes, patch: bytes) -> bytes:
        raise NotImplementedError


class BsdiffAlgorithm(DiffAlgorithm):
    name = "bsdiff"

    def generate(self, old: bytes, new: bytes) -> bytes:
        return bsdiff4.diff(old, new)

    def apply(self, old: bytes, patch: bytes) -> bytes:
        try:
            return bsdiff4.patch(old, patch)
        except (ValueError, OSError, EOFError) as e:
            raise CorruptPatch(f"bsdiff patch cannot be decoded: {e}") from e


class HdiffAlgorithm(DiffAlgorithm):
    """zstd "patch-from" delta: the old bytes act as a raw-content dictionary.

    Cheaper to build than bsdiff on large binaries and usually smaller when
    the change is a few inserted or moved blocks.
    """
    name = "hdiff"

    def _dict(self, old: bytes) -> zstandard.ZstdCompressionDict | None:
        if len(old) < _MIN_DICT:
            return None
        return zstandard.ZstdCompressionDict(old, dict_type=zstandard.DICT_TYPE_RAWCONTENT)

    def generate(self, old: bytes, new: bytes) -> bytes:
        params = zstandard.ZstdCompressionParameters.from_level(
            _ZSTD_LEVEL, window_log=_WINDOW_LOG, enable_ldm=True, write_content_size=1)
        cctx = zstandard.ZstdCompressor(dict_data=self._dict(old), compression_params=params)
        return cctx.compress(new)

    def apply(self, old: bytes, patch: bytes) -> bytes:
        dctx = zstandard.ZstdDecompressor(dict_data=self._dict(old),
                                          max_window_size=1 << _WINDOW_LOG)
        try:
            return dctx.decompress(patch)
        except zstandard.ZstdError as e:
            raise CorruptPatch(f"hdiff patch cannot be decoded: {e}") from e


_REGISTRY: dict[str, DiffAlgorithm] = {}


def register(algorithm: DiffAlgorithm) -> DiffAlgorithm:
    if not algorithm.name:
        raise ValueError("diff algorithm needs a name")
    _REGISTRY[algorithm.name] = algorithm
    return algorithm


register(BsdiffAlgorithm())
register(HdiffAlgorithm())


def available_algorithms() -> list[str]:
    return sorted(_REGISTRY)


def get_algorithm(name: str) -> DiffAlgorithm:
    try:
        return _REGISTRY[name]
    except KeyError:
        raise AlgorithmUnsupported(name) from None


def generate(old: bytes, new: bytes, algorithm: str = DEFAULT_ALGORITHM) -> bytes:
    return get_algorithm(algorithm).generate(old, new)


def apply(old: bytes, patch: bytes, algorithm: str = DEFAULT_ALGORITHM) -> bytes:
    return get_algorithm(algorithm).apply(old, patch)


# ----- file helpers -----

def make_patch(src_file: Path, dst_file: Path, patch_out: Path,
               algorithm: str = DEFAULT_ALGORITHM, verify: bool = True) -> None:
    """Write the delta turning src_file into dst_file.

    With verify, the delta is replayed in memory first and must reproduce
    dst_file byte for byte.
    """
    codec = get_algorithm(algorithm)
    old = Path(src_file).read_bytes()
    new = Path(dst_file).read_bytes()
    patch = codec.generate(old, new)
    if verify and codec.apply(old, patch) != new:
        raise CorruptPatch(f"verification failed for {dst_file} ({algorithm})")
    patch_out.parent.mkdir(parents=True, exist_ok=True)
    patch_out.write_bytes(patch)

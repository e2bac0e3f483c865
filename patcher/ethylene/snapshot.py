from __future__ import annotations
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from .console import progress
from .errors import PatchIOError
from .hashing import fingerprint_file
from .system import optimal_threads


def walk_files(root: str | Path) -> list[str]:
    """Relative '/' paths of every regular file under root, in a stable order."""
    root = Path(root)
    found: list[str] = []

    def _raise(err: OSError) -> None:
        raise PatchIOError(f"cannot walk {err.filename}: {err.strerror}", path=err.filename) from err

    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        dirnames.sort()
        for f in sorted(filenames):
            full = Path(dirpath, f)
            if not full.is_file():
                continue  # sockets, fifos, dangling links
            rel = full.relative_to(root).as_posix()
            try:
                rel.encode("utf-8")
            except UnicodeEncodeError:
                # undecodable bytes come back as surrogates; manifests are UTF-8
                shown = os.fsencode(rel).decode("utf-8", "backslashreplace")
                raise PatchIOError(f"file name is not valid UTF-8: {shown}", path=shown) from None
            found.append(rel)
    return found


def take_snapshot(root: str | Path, workers: int | None = None,
                  desc: str = "Hashing") -> dict[str, str]:
    """Map every file under root to its fingerprint.

    Files are hashed in parallel; the returned dict keeps walk order so
    anything built from it is reproducible.
    """
    root = Path(root)
    rels = walk_files(root)
    hashes: dict[str, str] = {}
    if workers is None or workers <= 0:
        workers = optimal_threads()

    with progress(len(rels), desc) as bar:
        with ThreadPoolExecutor(max_workers=workers) as ex:
            futs = {ex.submit(fingerprint_file, root / rel): rel for rel in rels}
            for fut in as_completed(futs):
                rel = futs[fut]
                try:
                    hashes[rel] = fut.result()
                except PatchIOError as e:
                    for f in futs:
                        f.cancel()
                    raise PatchIOError(f"failed to hash {rel}: {e}", path=rel) from e
                bar.update(1)
    return {rel: hashes[rel] for rel in rels}

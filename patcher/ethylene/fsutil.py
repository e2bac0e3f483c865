from __future__ import annotations
import os, shutil, tempfile
from pathlib import Path


def temp_sibling(dst: Path, suffix: str = ".new") -> Path:
    """Create an empty temp file next to dst, so a later rename stays on one volume."""
    fd, name = tempfile.mkstemp(prefix=f".{dst.name}.", suffix=suffix, dir=dst.parent)
    os.close(fd)
    return Path(name)


def write_durable(p: Path, data: bytes) -> None:
    with open(p, "wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())


def safe_replace(src_tmp: Path, dst: Path) -> None:
    """Atomic replace on the same volume (os.replace is atomic on POSIX and Windows).
    Caller ensures src_tmp exists and is complete/verified.
    """
    dst.parent.mkdir(parents=True, exist_ok=True)
    os.replace(str(src_tmp), str(dst))


def copy_file(src: Path, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(src, dst)


def prune_empty_dirs(start: Path, root: Path) -> list[Path]:
    """Remove start and its ancestors while they are empty, stopping at root.

    root itself is never removed. Returns the removed directories.
    """
    removed: list[Path] = []
    root = root.resolve()
    cur = start.resolve()
    while cur != root and root in cur.parents:
        try:
            if any(cur.iterdir()):
                break
            cur.rmdir()
            removed.append(cur)
        except FileNotFoundError:
            pass
        except OSError:
            # not empty after all, or not ours to remove
            break
        cur = cur.parent
    return removed

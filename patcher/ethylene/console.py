from __future__ import annotations
import io, os, sys

from tqdm import tqdm

# Env override: ETHYLENE_TQDM=0 forces bars on, =1 forces them off.
_ENV = "ETHYLENE_TQDM"


def log(msg: str) -> None:
    """
    Safe log function:
    - Prefer tqdm.write so lines don't tear a running progress bar.
    - Fall back to plain print, even if sys.stderr is None.
    """
    try:
        tqdm.write(msg, file=_tqdm_file())
        return
    except Exception:
        pass
    if getattr(sys, "stderr", None) is not None:
        print(msg, file=sys.stderr)
    else:
        print(msg)


def warn(msg: str) -> None:
    log(f"WARNING: {msg}")


def progress(total: int, desc: str, unit: str = "file") -> tqdm:
    return tqdm(total=total, desc=desc, unit=unit, file=_tqdm_file(), disable=_tqdm_disable(),
                leave=False)


def _tqdm_file():
    """
    Return a file-like object for tqdm to write to.
    Without a real stderr (frozen/windowed builds), fall back to a sink.
    """
    f = getattr(sys, "stderr", None)
    return f if (f is not None and hasattr(f, "write")) else io.StringIO()


def _tqdm_disable() -> bool:
    env = os.environ.get(_ENV)
    if env == "0":
        return False
    if env == "1":
        return True
    f = getattr(sys, "stderr", None)
    return not (f is not None and hasattr(f, "write"))

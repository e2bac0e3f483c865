from __future__ import annotations
import psutil

from .console import log


def check_resources(largest_file: int, factor: int = 3) -> None:
    """Warn when diffing the biggest file may not fit in available memory.

    Deltas are built in memory from both versions plus the output, hence
    the factor.
    """
    need_gb = largest_file * factor / (1024**3)
    mem = psutil.virtual_memory().available / (1024**3)
    if need_gb > mem:
        log(f"WARNING: Low memory ({mem:.1f} GB available, ~{need_gb:.1f} GB needed to diff largest file)")


def optimal_threads(cap: int = 8) -> int:
    # hashing is I/O bound: one worker per physical core, keep one for the caller
    cores = max(psutil.cpu_count(logical=False) or 1, 1)
    ram_gb = psutil.virtual_memory().total / (1024**3)
    by_ram = max(1, int(ram_gb))
    by_cpu = max(1, cores - 1)
    return max(1, min(by_ram, by_cpu, cap))

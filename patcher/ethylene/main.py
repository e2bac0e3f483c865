# ethylene/main.py
from __future__ import annotations
import sys

from . import cli
from .errors import PatchError


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    try:
        return cli.run_cli(argv)
    except PatchError as e:
        where = f"[{e.action}] " if e.action else ""
        print(f"Error: {where}{e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())

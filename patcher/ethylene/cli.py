from __future__ import annotations
import argparse
from pathlib import Path

from .apply import ApplyOptions, apply_bundle
from .bundle import verify_bundle
from .console import log
from .diff import DEFAULT_ALGORITHM, available_algorithms
from .reconcile import GenerateOptions, generate


def _cmd_gen(args: argparse.Namespace) -> int:
    opts = GenerateOptions(
        from_version=args.from_version,
        to_version=args.to_version,
        algorithm=args.algorithm,
        workers=args.workers,
        verify=not args.no_verify,
        overwrite=args.force,
    )
    generate(args.old, args.new, args.out, opts)
    return 0


def _cmd_apply(args: argparse.Namespace) -> int:
    opts = ApplyOptions(
        skip_satisfied=not args.strict,
        keep_failed_add=not args.remove_failed_add,
    )
    apply_bundle(args.patch, args.target, opts)
    return 0


def _cmd_verify(args: argparse.Namespace) -> int:
    problems = verify_bundle(args.patch)
    if problems:
        log(f"invalid bundle: {len(problems)} problem(s)")
        for p in problems:
            log(f"  - {p}")
        return 1
    log("bundle OK")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ethylene",
                                description="Manifest-based binary patcher with byte-level diffing")
    sub = p.add_subparsers(dest="cmd", required=True)

    g = sub.add_parser("gen", help="Generate a patch from old and new files or directories")
    g.add_argument("--old", type=Path, required=True, help="Path to old file or directory")
    g.add_argument("--new", type=Path, required=True, help="Path to new file or directory")
    g.add_argument("--out", type=Path, default=Path("./patch"), help="Output directory for the bundle")
    g.add_argument("--from-version", default="0.0.0", help="Source version label")
    g.add_argument("--to-version", default="0.0.1", help="Target version label")
    g.add_argument("--algorithm", default=DEFAULT_ALGORITHM, choices=available_algorithms(),
                   help="Diff algorithm")
    g.add_argument("--workers", type=int, help="Hashing threads (default: auto)")
    g.add_argument("--no-verify", action="store_true", help="Skip replaying each delta after building it")
    g.add_argument("--force", action="store_true", help="Replace a non-empty output directory")
    g.set_defaults(func=_cmd_gen)

    a = sub.add_parser("apply", help="Apply a patch bundle to a target directory")
    a.add_argument("--patch", type=Path, required=True, help="Path to patch bundle directory")
    a.add_argument("--target", type=Path, default=Path("."), help="Path to target directory")
    a.add_argument("--strict", action="store_true",
                   help="Fail on files already at the new version instead of skipping them")
    a.add_argument("--remove-failed-add", action="store_true",
                   help="Delete an added file whose hash does not verify")
    a.set_defaults(func=_cmd_apply)

    v = sub.add_parser("verify", help="Check a bundle holds every file its manifest references")
    v.add_argument("--patch", type=Path, required=True, help="Path to patch bundle directory")
    v.set_defaults(func=_cmd_verify)

    return p


def run_cli(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)

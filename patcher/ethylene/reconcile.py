from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path

from . import diff
from .bundle import MANIFEST_NAME, added_name, bundle_path, delta_name, prepare_output, save_manifest
from .console import log, progress
from .errors import BundleLayoutError, PatchError, PatchIOError
from .fsutil import copy_file
from .hashing import fingerprint_file
from .manifest import Action, FileEntry, Manifest, is_safe_relpath
from .snapshot import take_snapshot
from .system import check_resources


@dataclass(frozen=True)
class GenerateOptions:
    from_version: str = "0.0.0"
    to_version: str = "0.0.1"
    algorithm: str = diff.DEFAULT_ALGORITHM
    workers: int | None = None
    verify: bool = True
    overwrite: bool = False


def _make_delta(old_file: Path, new_file: Path, out_dir: Path, rel: str,
                opts: GenerateOptions) -> str:
    name = delta_name(rel)
    try:
        diff.make_patch(old_file, new_file, bundle_path(out_dir, name),
                        algorithm=opts.algorithm, verify=opts.verify)
    except OSError as e:
        raise PatchIOError(f"failed to diff {rel}: {e}", path=rel, action=Action.PATCH.value) from e
    except PatchError as e:
        e.path = e.path or rel
        raise
    return name


def _check_paths(rels: list[str]) -> None:
    for rel in rels:
        if not is_safe_relpath(rel):
            # legal on this filesystem but not portable, the manifest loader rejects it
            raise PatchError(f"cannot store file name in a bundle: {rel!r}", path=rel)


def _check_output(out_dir: str | Path, *inputs: Path) -> None:
    """Refuse an output directory that is, holds, or sits inside an input.

    prepare_output may clear out_dir, which must never take source data with it.
    """
    out = Path(out_dir).resolve()
    for src in inputs:
        p = src.resolve()
        if out == p or out in p.parents or p in out.parents:
            raise PatchError(f"output directory {out_dir} overlaps input {src}", path=str(out_dir))


def _check_layout(patched: list[str], added: list[str]) -> None:
    """Every bundle file needs its own name, and no name may double as a directory."""
    files: dict[str, tuple[str, str]] = {}
    for rel in patched:
        files[delta_name(rel)] = (rel, Action.PATCH.value)
    for rel in added:
        name = added_name(rel)
        if name in files:
            raise BundleLayoutError(
                f"bundle collision: delta for {files[name][0]} and added file {rel} "
                f"both map to {name}", path=rel, action=Action.ADD.value)
        files[name] = (rel, Action.ADD.value)

    for name, (rel, action) in files.items():
        parts = name.split("/")
        for i in range(1, len(parts)):
            parent = "/".join(parts[:i])
            if parent == MANIFEST_NAME:
                raise BundleLayoutError(f"bundle collision: {rel} would need {MANIFEST_NAME} "
                                        f"as a directory", path=rel, action=action)
            if parent in files:
                raise BundleLayoutError(
                    f"bundle collision: {parent} (for {files[parent][0]}) is a file but "
                    f"{rel} needs it as a directory", path=rel, action=action)


def reconcile(old_root: str | Path, new_root: str | Path, out_dir: str | Path,
              options: GenerateOptions = GenerateOptions()) -> Manifest:
    """Diff two directory trees into a patch bundle at out_dir.

    Pass 1 walks the old tree: files gone from the new tree become deletes,
    changed files become deltas. Pass 2 walks the new tree for files the
    old one lacks and stages full copies. The manifest is written last, so
    a failed run never leaves a manifest behind.
    """
    old_root, new_root = Path(old_root), Path(new_root)
    diff.get_algorithm(options.algorithm)
    _check_output(out_dir, old_root, new_root)

    log("Scanning old directory...")
    old_files = take_snapshot(old_root, options.workers, desc="Hashing old")
    log(f"  Found {len(old_files)} files")
    log("Scanning new directory...")
    new_files = take_snapshot(new_root, options.workers, desc="Hashing new")
    log(f"  Found {len(new_files)} files")

    changed = [rel for rel, h in old_files.items() if rel in new_files and new_files[rel] != h]
    added = [rel for rel in new_files if rel not in old_files]
    _check_paths([rel for rel in old_files if rel not in new_files] + changed + added)
    _check_layout(changed, added)
    out = prepare_output(out_dir, options.overwrite)
    if changed:
        check_resources(max((new_root / rel).stat().st_size for rel in changed))

    man = Manifest(options.from_version, options.to_version)
    unchanged = 0

    # ----- pass 1: old -> new -----
    with progress(len(old_files), "Generating patches") as bar:
        for rel, old_hash in old_files.items():
            bar.update(1)
            new_hash = new_files.get(rel)
            if new_hash is None:
                man.add_file(FileEntry(rel, Action.DELETE.value, old_hash=old_hash))
                log(f"  Delete: {rel}")
                continue
            if new_hash == old_hash:
                unchanged += 1
                continue
            name = _make_delta(old_root / rel, new_root / rel, out, rel, options)
            man.add_file(FileEntry(rel, Action.PATCH.value, old_hash=old_hash, new_hash=new_hash,
                                   patch_file=name, algorithm=options.algorithm))
            log(f"  Patch:  {rel}")

    # ----- pass 2: new-only files -----
    for rel in added:
        name = added_name(rel)
        try:
            copy_file(new_root / rel, bundle_path(out, name))
        except OSError as e:
            raise PatchIOError(f"failed to copy new file {rel}: {e}", path=rel,
                               action=Action.ADD.value) from e
        man.add_file(FileEntry(rel, Action.ADD.value, new_hash=new_files[rel], patch_file=name))
        log(f"  Add:    {rel}")

    save_manifest(out, man)
    c = man.counts()
    log(f"\nPatch generated: {options.from_version} -> {options.to_version}")
    log(f"  {c[Action.PATCH.value]} patched, {c[Action.ADD.value]} added, "
        f"{c[Action.DELETE.value]} deleted, {unchanged} unchanged")
    return man


def generate_file(old_file: str | Path, new_file: str | Path, out_dir: str | Path,
                  options: GenerateOptions = GenerateOptions()) -> Manifest:
    """Single-file bundle: one "patch" entry named after the old file."""
    old_file, new_file = Path(old_file), Path(new_file)
    diff.get_algorithm(options.algorithm)
    _check_paths([old_file.name])
    _check_output(out_dir, old_file, new_file)
    out = prepare_output(out_dir, options.overwrite)

    old_hash = fingerprint_file(old_file)
    new_hash = fingerprint_file(new_file)
    rel = old_file.name
    man = Manifest(options.from_version, options.to_version)
    if old_hash == new_hash:
        log(f"  Unchanged: {rel}")
    else:
        check_resources(new_file.stat().st_size)
        name = _make_delta(old_file, new_file, out, rel, options)
        man.add_file(FileEntry(rel, Action.PATCH.value, old_hash=old_hash, new_hash=new_hash,
                               patch_file=name, algorithm=options.algorithm))
        log(f"  Patched: {rel}")

    save_manifest(out, man)
    log(f"Patch generated: {options.from_version} -> {options.to_version}")
    return man


def generate(old: str | Path, new: str | Path, out_dir: str | Path,
             options: GenerateOptions = GenerateOptions()) -> Manifest:
    old, new = Path(old), Path(new)
    for label, p in (("old", old), ("new", new)):
        if not p.exists():
            raise PatchIOError(f"cannot access {label} path: {p}", path=str(p))
    if old.is_dir() != new.is_dir():
        raise PatchError("--old and --new must both be files or both be directories")
    if old.is_dir():
        return reconcile(old, new, out_dir, options)
    return generate_file(old, new, out_dir, options)

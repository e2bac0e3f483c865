from __future__ import annotations
import shutil
from dataclasses import dataclass
from pathlib import Path

from . import diff
from .bundle import bundle_path, load_manifest, target_path
from .console import log, progress, warn
from .errors import HashMismatch, PatchError, PatchIOError
from .fsutil import copy_file, prune_empty_dirs, safe_replace, temp_sibling, write_durable
from .hashing import fingerprint_file
from .manifest import Action, FileEntry, Manifest


@dataclass(frozen=True)
class ApplyOptions:
    # skip entries whose target already holds the post-image, so an
    # interrupted run can simply be started again
    skip_satisfied: bool = True
    # leave a miscopied "add" file in place for inspection
    keep_failed_add: bool = True


@dataclass
class ApplyResult:
    patched: int = 0
    added: int = 0
    deleted: int = 0
    already_applied: int = 0
    skipped: int = 0


def _read(p: Path, rel: str, action: str, what: str) -> bytes:
    try:
        return p.read_bytes()
    except OSError as e:
        raise PatchIOError(f"cannot read {what} for {rel}: {e}", path=rel, action=action) from e


def _current_hash(p: Path) -> str | None:
    if not p.is_file():
        return None
    return fingerprint_file(p)


def _apply_patch(e: FileEntry, bundle_dir: Path, root: Path, opts: ApplyOptions) -> bool:
    """Returns False when the target already holds the new version."""
    dst = target_path(root, e.path)
    try:
        current = fingerprint_file(dst)
    except PatchIOError as err:
        raise PatchIOError(f"cannot read {e.path}: {err}", path=e.path, action=e.action) from err
    if opts.skip_satisfied and current == e.new_hash and current != e.old_hash:
        return False
    if current != e.old_hash:
        raise HashMismatch(e.path, e.old_hash, current, "pre-patch", action=e.action)

    old = _read(dst, e.path, e.action, "target")
    delta = _read(bundle_path(bundle_dir, e.patch_file), e.path, e.action, "patch")
    try:
        new = diff.apply(old, delta, e.algorithm or diff.DEFAULT_ALGORITHM)
    except PatchError as err:
        err.path, err.action = e.path, e.action
        raise

    # verify-then-swap: the target is only touched by the final rename
    try:
        tmp = temp_sibling(dst)
    except OSError as err:
        raise PatchIOError(f"cannot create temp file for {e.path}: {err}", path=e.path, action=e.action) from err
    try:
        write_durable(tmp, new)
        got = fingerprint_file(tmp)
        if got != e.new_hash:
            raise HashMismatch(e.path, e.new_hash, got, "post-patch", action=e.action)
        shutil.copymode(dst, tmp)
        safe_replace(tmp, dst)
    except OSError as err:
        raise PatchIOError(f"failed to patch {e.path}: {err}", path=e.path, action=e.action) from err
    finally:
        tmp.unlink(missing_ok=True)
    return True


def _apply_add(e: FileEntry, bundle_dir: Path, root: Path, opts: ApplyOptions) -> bool:
    dst = target_path(root, e.path)
    if opts.skip_satisfied and _current_hash(dst) == e.new_hash:
        return False
    src = bundle_path(bundle_dir, e.patch_file)
    try:
        copy_file(src, dst)
    except OSError as err:
        raise PatchIOError(f"failed to add {e.path}: {err}", path=e.path, action=e.action) from err
    got = fingerprint_file(dst)
    if got != e.new_hash:
        if not opts.keep_failed_add:
            dst.unlink(missing_ok=True)
        raise HashMismatch(e.path, e.new_hash, got, "add", action=e.action)
    return True


def _apply_delete(e: FileEntry, root: Path) -> bool:
    """Returns False when the file was already gone.

    Anything at the path that is not a regular file counts as gone: a later
    "add" may have turned the path into a directory on an earlier run.
    """
    dst = target_path(root, e.path)
    removed = False
    if dst.is_file():
        if e.old_hash is not None:
            got = fingerprint_file(dst)
            if got != e.old_hash:
                # refuse to remove a file that is not the one we expect
                raise HashMismatch(e.path, e.old_hash, got, "pre-delete", action=e.action)
        try:
            dst.unlink()
            removed = True
        except FileNotFoundError:
            pass
        except OSError as err:
            raise PatchIOError(f"failed to delete {e.path}: {err}", path=e.path, action=e.action) from err
    # also prunes directories left behind by an interrupted earlier run
    prune_empty_dirs(dst.parent, root)
    return removed


def apply_manifest(manifest: Manifest, bundle_dir: str | Path, target_root: str | Path,
                   options: ApplyOptions = ApplyOptions()) -> ApplyResult:
    """Replay every entry against target_root, strictly in manifest order.

    The first hard failure aborts the run. Entries before it stay applied;
    the failing entry itself leaves its target as it was (except a
    miscopied "add" with keep_failed_add).
    """
    bundle_dir, root = Path(bundle_dir), Path(target_root)
    if not root.is_dir():
        raise PatchIOError(f"target is not a directory: {root}", path=str(root))
    res = ApplyResult()
    log(f"Applying patch: {manifest.from_version} -> {manifest.to_version}")

    with progress(len(manifest.files), "Applying patches") as bar:
        for e in manifest.files:
            bar.update(1)
            if e.action == Action.PATCH:
                if _apply_patch(e, bundle_dir, root, options):
                    res.patched += 1
                    log(f"  Patched: {e.path}")
                else:
                    res.already_applied += 1
                    log(f"  Skipped: {e.path} (already patched)")
            elif e.action == Action.ADD:
                if _apply_add(e, bundle_dir, root, options):
                    res.added += 1
                    log(f"  Added:   {e.path}")
                else:
                    res.already_applied += 1
                    log(f"  Skipped: {e.path} (already added)")
            elif e.action == Action.DELETE:
                if _apply_delete(e, root):
                    res.deleted += 1
                    log(f"  Deleted: {e.path}")
                else:
                    res.already_applied += 1
                    log(f"  Skipped: {e.path} (already removed)")
            else:
                res.skipped += 1
                warn(f"unknown action '{e.action}' for {e.path}, skipping")

    log("\nPatch applied successfully!")
    log(f"  {res.patched} patched, {res.added} added, {res.deleted} deleted")
    return res


def apply_bundle(bundle_dir: str | Path, target_root: str | Path,
                 options: ApplyOptions = ApplyOptions()) -> ApplyResult:
    return apply_manifest(load_manifest(bundle_dir), bundle_dir, target_root, options)

from __future__ import annotations
import json, os
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .diff import DEFAULT_ALGORITHM
from .errors import MalformedManifest, PatchIOError
from .fsutil import temp_sibling
from .hashing import is_fingerprint


class Action(str, Enum):
    PATCH = "patch"
    ADD = "add"
    DELETE = "delete"


# json key -> FileEntry attribute, in on-disk order
_FIELDS = (
    ("path", "path"),
    ("action", "action"),
    ("oldHash", "old_hash"),
    ("newHash", "new_hash"),
    ("patchFile", "patch_file"),
    ("algorithm", "algorithm"),
)

# action -> (required, forbidden) optional-field sets
_RULES: dict[str, tuple[set[str], set[str]]] = {
    Action.PATCH.value: ({"oldHash", "newHash", "patchFile"}, set()),
    Action.ADD.value: ({"newHash", "patchFile"}, {"oldHash", "algorithm"}),
    Action.DELETE.value: (set(), {"newHash", "patchFile", "algorithm"}),
}


@dataclass
class FileEntry:
    path: str
    action: str
    old_hash: str | None = None
    new_hash: str | None = None
    patch_file: str | None = None
    algorithm: str | None = None

    def to_dict(self) -> dict[str, str]:
        out: dict[str, str] = {}
        for key, attr in _FIELDS:
            value = getattr(self, attr)
            if value is not None:
                out[key] = value.value if isinstance(value, Action) else value
        return out


@dataclass
class Manifest:
    from_version: str
    to_version: str
    files: list[FileEntry] = field(default_factory=list)

    def add_file(self, entry: FileEntry) -> None:
        self.files.append(entry)

    def counts(self) -> Counter:
        return Counter(e.action for e in self.files)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fromVersion": self.from_version,
            "toVersion": self.to_version,
            "files": [e.to_dict() for e in self.files],
        }

    @staticmethod
    def from_dict(data: Any) -> "Manifest":
        if not isinstance(data, dict):
            raise MalformedManifest("manifest must be a JSON object")
        for key in ("fromVersion", "toVersion"):
            if not isinstance(data.get(key), str):
                raise MalformedManifest(f"{key} must be a string")
        files = data.get("files")
        if not isinstance(files, list):
            raise MalformedManifest("files must be a list")

        man = Manifest(data["fromVersion"], data["toVersion"])
        seen: set[str] = set()
        for i, raw in enumerate(files):
            entry = _parse_entry(i, raw)
            if entry.path in seen:
                raise MalformedManifest(f"files[{i}]: duplicate path {entry.path}", path=entry.path)
            seen.add(entry.path)
            man.add_file(entry)
        return man

    @staticmethod
    def load(path: str | Path) -> "Manifest":
        p = Path(path)
        try:
            raw = p.read_text(encoding="utf-8")
        except OSError as e:
            raise PatchIOError(f"cannot read manifest {p}: {e}", path=str(p)) from e
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedManifest(f"{p} is not valid JSON: {e}") from e
        return Manifest.from_dict(data)

    def save(self, path: str | Path) -> None:
        """Write the manifest atomically; a reader sees the old file or the whole new one."""
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"
        tmp = temp_sibling(p, suffix=".tmp")
        try:
            tmp.write_text(text, encoding="utf-8")
            os.replace(tmp, p)
        except (OSError, UnicodeError) as e:
            raise PatchIOError(f"cannot write manifest {p}: {e}", path=str(p)) from e
        finally:
            tmp.unlink(missing_ok=True)


def is_safe_relpath(rel: object) -> bool:
    """Relative, '/'-separated, and unable to climb out of its root."""
    if not isinstance(rel, str) or not rel:
        return False
    if "\\" in rel or "\x00" in rel or rel.startswith("/"):
        return False
    # drive letters ("C:foo") are absolute on Windows
    if len(rel) > 1 and rel[1] == ":":
        return False
    return all(part not in ("", ".", "..") for part in rel.split("/"))


def _parse_entry(i: int, raw: Any) -> FileEntry:
    if not isinstance(raw, dict):
        raise MalformedManifest(f"files[{i}] must be an object")
    path, action = raw.get("path"), raw.get("action")
    if not is_safe_relpath(path):
        raise MalformedManifest(f"files[{i}]: unsafe or missing path {path!r}")
    if not isinstance(action, str) or not action:
        raise MalformedManifest(f"files[{i}] ({path}): missing action", path=path)

    def bad(msg: str) -> MalformedManifest:
        return MalformedManifest(f"files[{i}] ({path}, {action}): {msg}", path=path, action=action)

    for key, _ in _FIELDS[2:]:
        if key in raw and not isinstance(raw[key], str):
            raise bad(f"{key} must be a string")

    rules = _RULES.get(action)
    if rules is not None:
        required, forbidden = rules
        present = {k for k, _ in _FIELDS[2:] if raw.get(k) is not None}
        missing = sorted(required - present)
        if missing:
            raise bad(f"missing {', '.join(missing)}")
        extra = sorted(forbidden & present)
        if extra:
            raise bad(f"{', '.join(extra)} not allowed")
        for key in ("oldHash", "newHash"):
            if key in present and not is_fingerprint(raw[key]):
                raise bad(f"{key} is not a lowercase hex fingerprint")
        if "patchFile" in present and not is_safe_relpath(raw["patchFile"]):
            raise bad(f"unsafe patchFile {raw['patchFile']!r}")

    entry = FileEntry(**{attr: raw.get(key) for key, attr in _FIELDS})
    if action == Action.PATCH.value and entry.algorithm is None:
        # written before the algorithm field existed
        entry.algorithm = DEFAULT_ALGORITHM
    return entry

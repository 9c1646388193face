"""Key/value stores, the response cache, and JSON artifact lookup.

Responsibilities
----------------
- :class:`KeyValueStore` is the contract every store honours:
  ``get(key) -> value | None``, ``set(key, value, ttl)``, ``delete(key)``.
- :class:`MemoryStore` keeps JSON-compatible values in process memory;
  :class:`FileStore` keeps them as one JSON file per key, guarded by
  :mod:`filelock` so several processes can share a directory.
- :class:`ResponseCache` stores envelopes in their mapping form under
  ``operation[user-<scope>]`` keys.
- :class:`ArtifactLocator` finds rule-set and mock JSON files by name: external
  paths first, the legacy path last. A filename found twice below one path is
  an error, as is a file that isn't parsable.

Design Notes
------------
- Stores copy on the way in and out; a caller holding a returned value cannot
  alter what is stored.
- ``ttl`` of ``None`` or ``0`` means no expiry.
- Concurrent writers to the same key: last writer wins.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Protocol, Sequence, Tuple

from filelock import FileLock

from .envelope import ResponseEnvelope
from .errors import ArtifactDuplicateError, ArtifactNotFoundError, ArtifactParseError

__all__ = (
    "KeyValueStore",
    "MemoryStore",
    "FileStore",
    "ResponseCache",
    "ArtifactLocator",
    "STORE_NAMES",
    "open_store",
)

LOGGER = logging.getLogger(__name__)

STORE_RESPONSE = "http-response"
STORE_RULE_SET = "http-response_validation-rule-set"
STORE_MOCK = "http-response_mock"
STORE_NAMES = (STORE_RESPONSE, STORE_RULE_SET, STORE_MOCK)


class KeyValueStore(Protocol):
    """Minimal cache contract consumed by the broker."""

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None: ...

    def delete(self, key: str) -> bool: ...


class MemoryStore:
    """Thread-safe in-process store with per-key expiry."""

    def __init__(self, *, ttl_default: Optional[int] = None, clock=time.monotonic) -> None:
        self.ttl_default = ttl_default
        self._clock = clock
        self._lock = threading.Lock()
        self._items: Dict[str, Tuple[Optional[float], Any]] = {}

    def get(self, key: str) -> Any:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at is not None and self._clock() >= expires_at:
                del self._items[key]
                return None
            return copy.deepcopy(value)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = ttl if ttl is not None else self.ttl_default
        expires_at = self._clock() + ttl if ttl else None
        with self._lock:
            self._items[key] = (expires_at, copy.deepcopy(value))

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class FileStore:
    """JSON file per key below ``directory``; values must be JSON-compatible."""

    def __init__(self, directory: Path, *, ttl_default: Optional[int] = None, clock=time.time):
        self.directory = Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)
        self.ttl_default = ttl_default
        self._clock = clock

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.json"

    def _lock(self, path: Path) -> FileLock:
        return FileLock(str(path) + ".lock")

    def get(self, key: str) -> Any:
        path = self._path(key)
        if not path.exists():
            return None
        with self._lock(path):
            try:
                entry = json.loads(path.read_text(encoding="utf-8"))
            except FileNotFoundError:
                return None
            except ValueError:
                LOGGER.warning("Dropping unreadable cache entry %s", path.name)
                path.unlink(missing_ok=True)
                return None
            expires_at = entry.get("expires_at")
            if expires_at is not None and self._clock() >= expires_at:
                path.unlink(missing_ok=True)
                return None
            return entry.get("value")

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = ttl if ttl is not None else self.ttl_default
        entry = {
            "key": key,
            "expires_at": self._clock() + ttl if ttl else None,
            "value": value,
        }
        path = self._path(key)
        tmp = path.with_suffix(f".{os.getpid()}.tmp")
        with self._lock(path):
            tmp.write_text(json.dumps(entry), encoding="utf-8")
            os.replace(tmp, path)

    def delete(self, key: str) -> bool:
        path = self._path(key)
        with self._lock(path):
            if path.exists():
                path.unlink()
                return True
        return False


def open_store(name: str, cache_dir: Optional[Path] = None) -> "MemoryStore | FileStore":
    """Named store: a :class:`FileStore` below ``cache_dir``, else in memory."""
    if name not in STORE_NAMES:
        raise ValueError(f"Unknown store[{name}], expected one of {', '.join(STORE_NAMES)}")
    if cache_dir is None:
        return MemoryStore()
    return FileStore(Path(cache_dir) / name)


class ResponseCache:
    """Envelope cache on top of any :class:`KeyValueStore`."""

    def __init__(self, store: KeyValueStore, *, ttl_default: int = 3600) -> None:
        self.store = store
        self.ttl_default = ttl_default

    def get(self, key: str) -> Optional[ResponseEnvelope]:
        data = self.store.get(key)
        if data is None:
            return None
        return ResponseEnvelope.from_mapping(data)

    def set(self, key: str, envelope: ResponseEnvelope, ttl: Optional[int] = None) -> None:
        self.store.set(key, envelope.to_dict(), ttl or self.ttl_default)

    def delete(self, key: str) -> bool:
        return self.store.delete(key)


class ArtifactLocator:
    """Finds uniquely named JSON artifacts below a list of directories.

    Args:
        paths: Directories searched first, in order.
        legacy_path: Directory searched last.
        suffix: Filename suffix of artifacts, e.g. ``".mock.json"``.
    """

    def __init__(self, paths: Sequence[Path], legacy_path: Optional[Path], suffix: str) -> None:
        self.paths = [Path(p) for p in paths]
        self.legacy_path = Path(legacy_path) if legacy_path is not None else None
        self.suffix = suffix

    @property
    def search_paths(self) -> list[Path]:
        paths = list(self.paths)
        if self.legacy_path is not None:
            paths.append(self.legacy_path)
        return paths

    def _listing(self, root: Path) -> Dict[str, Path]:
        """Filename -> path for every artifact below ``root``."""
        files: Dict[str, Path] = {}
        if not root.is_dir():
            return files
        for path in sorted(root.rglob(f"*{self.suffix}")):
            if not path.is_file():
                continue
            if path.name in files:
                raise ArtifactDuplicateError(
                    f"Artifact filename[{path.name}] is not unique below path[{root}].",
                    filename=path.name,
                    details={"paths": [str(files[path.name]), str(path)]},
                )
            files[path.name] = path
        return files

    def find(self, filename: str) -> Path:
        """Path of ``filename``.

        Raises:
            ArtifactNotFoundError: No search path has it.
            ArtifactDuplicateError: A search path has it more than once.
        """
        found: list[str] = []
        for root in self.search_paths:
            listing = self._listing(root)
            if filename in listing:
                return listing[filename]
            found.extend(listing)
        raise ArtifactNotFoundError(
            f"Paths[{', '.join(str(p) for p in self.search_paths)}] have no file[{filename}] "
            "as child or descendant.",
            filename=filename,
            details={"files found": sorted(found)},
        )

    def find_all(self, filenames: Iterable[str]) -> Dict[str, Path]:
        """Paths of every one of ``filenames``; reports all missing at once."""
        paths: Dict[str, Path] = {}
        missing: list[str] = []
        for filename in filenames:
            try:
                paths[filename] = self.find(filename)
            except ArtifactNotFoundError:
                missing.append(filename)
        if missing:
            raise ArtifactNotFoundError(
                f"Paths[{', '.join(str(p) for p in self.search_paths)}] have no files"
                f"[{', '.join(missing)}] as children or descendants.",
                filename=missing[0],
                details={"files missing": missing},
            )
        return paths

    def load(self, filename: str) -> Any:
        """Parsed JSON content of ``filename``.

        Raises:
            ArtifactParseError: The file is unreadable or not valid JSON.
        """
        path = self.find(filename)
        return self.parse(path)

    @staticmethod
    def parse(path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ArtifactParseError(
                f"Artifact file[{path.name}] is not parsable: {exc}",
                filename=path.name,
            ) from exc

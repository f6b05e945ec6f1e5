"""A cache of analysed provider sets, checked against the files they came from."""

from __future__ import annotations

import hashlib
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from .model import ProviderSet

_HASH_CHUNK = 1 << 16


def compute_file_hash(path: "os.PathLike[str] | str") -> str:
    """Return the hex SHA-256 digest of the file at ``path``.

    Raises :class:`OSError` if the file cannot be read.
    """
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(_HASH_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _key(pkg_path: str, var_name: str) -> str:
    return f"{pkg_path}:{var_name}"


@dataclass
class _CachedProviderSet:
    provider_set: ProviderSet
    timestamp: float = field(default_factory=time.time)


class ProviderSetCache:
    """Provider sets keyed by package and variable name, safe for use from threads.

    An entry stays valid while the files it was built from are unchanged:
    a matching modification time is accepted at once, and otherwise the
    content hash decides.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sets: Dict[str, _CachedProviderSet] = {}
        self._file_mod_time: Dict[str, int] = {}
        self._file_hash: Dict[str, str] = {}

    def _unchanged_by_mod_time(self, path: str) -> Optional[bool]:
        """True if the mod time matches, False if not, None if the file is unreadable."""
        try:
            mod_time = os.stat(path).st_mtime_ns
        except OSError:
            return None
        return self._file_mod_time.get(path) == mod_time

    def get_cached_set(
        self, pkg_path: str, var_name: str, files: Iterable[str]
    ) -> Optional[ProviderSet]:
        """Return the cached set if every file is unchanged, checking hashes when mod times differ."""
        with self._lock:
            cached = self._sets.get(_key(pkg_path, var_name))
            if cached is None:
                return None
            for path in files:
                same_time = self._unchanged_by_mod_time(path)
                if same_time is None:
                    return None
                if same_time:
                    continue
                try:
                    digest = compute_file_hash(path)
                except OSError:
                    return None
                if self._file_hash.get(path) != digest:
                    return None
            return cached.provider_set

    def get_cached_set_fast(
        self, pkg_path: str, var_name: str, files: Iterable[str]
    ) -> Optional[ProviderSet]:
        """Return the cached set if every file's modification time is unchanged.

        A file touched without being changed makes this miss.
        """
        with self._lock:
            cached = self._sets.get(_key(pkg_path, var_name))
            if cached is None:
                return None
            for path in files:
                if not self._unchanged_by_mod_time(path):
                    return None
            return cached.provider_set

    def cache_set(
        self,
        pkg_path: str,
        var_name: str,
        provider_set: ProviderSet,
        files: Iterable[str],
    ) -> None:
        """Store ``provider_set`` and record the state of the files it came from.

        Files that cannot be read are skipped.
        """
        with self._lock:
            for path in files:
                try:
                    self._file_mod_time[path] = os.stat(path).st_mtime_ns
                except OSError:
                    continue
                try:
                    self._file_hash[path] = compute_file_hash(path)
                except OSError:
                    continue
            self._sets[_key(pkg_path, var_name)] = _CachedProviderSet(provider_set)

    def invalidate_package(self, pkg_path: str) -> None:
        """Drop every cached set that belongs to ``pkg_path``."""
        prefix = pkg_path + ":"
        with self._lock:
            for key in [k for k in self._sets if k.startswith(prefix)]:
                del self._sets[key]

    def clear(self) -> None:
        """Drop every cached set and every recorded file hash."""
        with self._lock:
            self._sets = {}
            self._file_hash = {}

    def stats(self) -> Tuple[int, int]:
        """Return the number of cached sets and of files with a recorded hash."""
        with self._lock:
            return len(self._sets), len(self._file_hash)


_global_cache = ProviderSetCache()


def get_global_cache() -> ProviderSetCache:
    """Return the process-wide provider set cache."""
    return _global_cache
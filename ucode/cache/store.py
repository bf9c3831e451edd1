"""Content-addressed store for compiled artifacts.

Entries live in one flat directory and are named by the hex cache key:
``<key>`` for executables and ``<key>.zip`` for runtime-artifact bundles.
The file's modification time is the only metadata. Writers publish entries
with ``os.replace`` so concurrent readers never see a partial file.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import stat
import tempfile
import threading
import time
import zipfile

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, List, Mapping, Optional, Sequence

from ucode.constants import (
    APP_NAME,
    ARCHIVE_SUFFIX,
    CACHE_KEY_HEX_CHARS,
    DEFAULT_MAX_CACHE_AGE_S,
    TEMP_PREFIX,
)
from ucode.exceptions import CacheError
from ucode.types import Artifact, ArtifactKind

LOGGER = logging.getLogger(__name__)

_SWEPT_DIRS: set[str] = set()
_SWEEP_LOCK = threading.Lock()


def resolve_cache_directory(
    env: Optional[Mapping[str, str]] = None,
) -> Path:
    """Return ``$XDG_CACHE_HOME/ucode`` (or ``~/.cache/ucode``), created."""

    env = os.environ if env is None else env
    base = env.get("XDG_CACHE_HOME") or str(Path.home() / ".cache")
    directory = Path(base).expanduser() / APP_NAME
    _ensure_directory(directory)
    return directory


def _ensure_directory(directory: Path) -> None:
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except FileExistsError as exc:
        # exist_ok only covers directories; a regular file is a real conflict
        raise CacheError(f"cache path is not a directory: {directory}") from exc
    except OSError as exc:
        raise CacheError(
            f"cannot create cache directory {directory}: {exc}"
        ) from exc


def compute_key(
    source: bytes, compiler_path: str, flags: Sequence[str]
) -> str:
    """Fingerprint of (source bytes, resolved compiler path, ordered flags)."""

    digest = hashlib.sha256()
    for part in (source, os.fsencode(compiler_path), *map(os.fsencode, flags)):
        # length prefix keeps ("ab", "c") and ("a", "bc") apart
        digest.update(len(part).to_bytes(8, "big"))
        digest.update(part)
    return digest.hexdigest()[:CACHE_KEY_HEX_CHARS]


@dataclass(frozen=True)
class CacheHandle:
    key: str
    path: Path
    kind: ArtifactKind


def _safe_member_path(destination: Path, name: str) -> Path:
    member = PurePosixPath(name)
    if member.is_absolute() or ".." in member.parts or not member.parts:
        raise CacheError(f"unsafe archive member: {name!r}")
    return destination.joinpath(*member.parts)


class CacheStore:
    """Compilation cache rooted at a single directory."""

    def __init__(
        self,
        directory: Optional[Path] = None,
        *,
        max_age_s: float = DEFAULT_MAX_CACHE_AGE_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._directory = Path(directory) if directory is not None else None
        self.max_age_s = max_age_s
        self._clock = clock

    @property
    def directory(self) -> Path:
        if self._directory is None:
            self._directory = resolve_cache_directory()
        else:
            _ensure_directory(self._directory)
        return self._directory

    compute_key = staticmethod(compute_key)

    def entry_path(self, key: str, kind: ArtifactKind) -> Path:
        if kind is ArtifactKind.ARCHIVE:
            return self.directory / f"{key}{ARCHIVE_SUFFIX}"
        return self.directory / key

    def lookup(self, key: str, kind: ArtifactKind) -> Optional[CacheHandle]:
        """Return a handle for a fresh, usable entry or ``None`` on a miss.

        Stale entries are deleted here, so expiry is only noticed when an
        entry is probed.
        """

        path = self.entry_path(key, kind)
        try:
            st = path.stat()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheError(f"cannot stat cache entry {path}: {exc}") from exc
        if not stat.S_ISREG(st.st_mode):
            return None
        mode = os.X_OK if kind is ArtifactKind.EXECUTABLE else os.R_OK
        if not os.access(path, mode):
            LOGGER.debug("cache entry %s is not usable, ignoring", path.name)
            return None
        age = self._clock() - st.st_mtime
        if age > self.max_age_s:
            LOGGER.debug("cache entry %s expired (%.0fs old)", path.name, age)
            self._discard(path)
            return None
        LOGGER.debug("cache hit %s", path.name)
        return CacheHandle(key=key, path=path, kind=kind)

    def store(self, key: str, artifact: Artifact) -> CacheHandle:
        """Publish an artifact under ``key`` via write-to-temp then rename."""

        if artifact.kind is ArtifactKind.SOURCE:
            raise CacheError("source artifacts are never cached")
        final = self.entry_path(key, artifact.kind)
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=final.parent, prefix=f"{TEMP_PREFIX}{key}-"
            )
        except OSError as exc:
            raise CacheError(f"cannot create temp file: {exc}") from exc
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                if artifact.kind is ArtifactKind.EXECUTABLE:
                    with artifact.path.open("rb") as src:
                        shutil.copyfileobj(src, handle)
                else:
                    self._write_archive(handle, artifact)
            os.chmod(
                tmp_path,
                0o755 if artifact.kind is ArtifactKind.EXECUTABLE else 0o644,
            )
            os.replace(tmp_path, final)
        except (OSError, ValueError, zipfile.BadZipFile) as exc:
            self._discard(tmp_path)
            raise CacheError(f"cannot store cache entry {key}: {exc}") from exc
        LOGGER.debug("stored %s in cache", final.name)
        return CacheHandle(key=key, path=final, kind=artifact.kind)

    @staticmethod
    def _write_archive(handle, artifact: Artifact) -> None:
        base = artifact.workdir or artifact.path
        with zipfile.ZipFile(handle, "w", zipfile.ZIP_DEFLATED) as archive:
            for file_path in sorted(artifact.files):
                arcname = file_path.relative_to(base).as_posix()
                archive.write(file_path, arcname=arcname)

    def restore(
        self,
        handle: CacheHandle,
        destination: Path,
        name: Optional[str] = None,
    ) -> List[Path]:
        """Materialize an entry inside ``destination`` for one run.

        Executables are hard-linked (or copied) so a concurrent eviction
        cannot pull the binary away before it starts. Bundles are unpacked
        as a complete set.
        """

        if handle.kind is not ArtifactKind.ARCHIVE:
            return [self._materialize(handle, destination, name or handle.key)]
        restored: List[Path] = []
        try:
            with zipfile.ZipFile(handle.path) as archive:
                members = [
                    info for info in archive.infolist() if not info.is_dir()
                ]
                if not members:
                    raise CacheError(f"empty cache archive {handle.path.name}")
                for info in members:
                    target = _safe_member_path(destination, info.filename)
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with archive.open(info) as src, target.open("wb") as dst:
                        shutil.copyfileobj(src, dst)
                    restored.append(target)
        except (OSError, zipfile.BadZipFile, CacheError) as exc:
            # a broken bundle would fail the same way next time
            self._discard(handle.path)
            for path in restored:
                self._discard(path)
            if isinstance(exc, CacheError):
                raise
            raise CacheError(
                f"cannot restore cache entry {handle.path.name}: {exc}"
            ) from exc
        return restored

    @staticmethod
    def _materialize(
        handle: CacheHandle, destination: Path, name: str
    ) -> Path:
        target = destination / name
        try:
            destination.mkdir(parents=True, exist_ok=True)
            try:
                os.link(handle.path, target)
            except OSError:
                shutil.copy2(handle.path, target)
        except OSError as exc:
            raise CacheError(
                f"cannot materialize cache entry {handle.path.name}: {exc}"
            ) from exc
        return target

    def evict_older_than(self, max_age_s: Optional[float] = None) -> int:
        """Delete entries older than ``max_age_s``; returns the count removed."""

        limit = self.max_age_s if max_age_s is None else max_age_s
        now = self._clock()
        removed = 0
        for path in self._entries():
            try:
                age = now - path.lstat().st_mtime
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise CacheError(f"cannot stat {path}: {exc}") from exc
            if age > limit and self._discard(path):
                removed += 1
        if removed:
            LOGGER.debug("evicted %d cache entries older than %ss", removed, limit)
        return removed

    def evict_all(self) -> int:
        removed = 0
        for path in self._entries():
            if self._discard(path):
                removed += 1
        LOGGER.debug("cleared %d cache entries", removed)
        return removed

    def sweep_once(self) -> int:
        """Run the age-based sweep at most once per process per directory."""

        key = str(self.directory.resolve())
        with _SWEEP_LOCK:
            if key in _SWEPT_DIRS:
                return 0
            _SWEPT_DIRS.add(key)
        return self.evict_older_than()

    def _entries(self) -> Iterable[Path]:
        try:
            return list(self.directory.iterdir())
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise CacheError(f"cannot list cache directory: {exc}") from exc

    @staticmethod
    def _discard(path: Path) -> bool:
        """Delete a file or directory; another process may have beaten us."""

        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            LOGGER.debug("could not remove %s: %s", path, exc)
            return False
        return True


def _reset_sweep_guard() -> None:
    """Forget which directories were swept (test helper)."""

    with _SWEEP_LOCK:
        _SWEPT_DIRS.clear()


__all__ = [
    "CacheHandle",
    "CacheStore",
    "compute_key",
    "resolve_cache_directory",
]

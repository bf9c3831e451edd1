import os
import zipfile

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from hypothesis import assume, given, settings
from hypothesis import strategies as st

from ucode.cache import CacheStore, compute_key, resolve_cache_directory
from ucode.constants import DEFAULT_MAX_CACHE_AGE_S
from ucode.exceptions import CacheError
from ucode.types import Artifact, ArtifactKind

names = st.text(
    alphabet=st.characters(blacklist_categories=("Cs",)), max_size=40
)
flag_lists = st.lists(names, max_size=6)


@settings(max_examples=75)
@given(source=st.binary(max_size=512), compiler=names, flags=flag_lists)
def test_compute_key_is_deterministic(source, compiler, flags):
    key = compute_key(source, compiler, flags)
    assert key == compute_key(source, compiler, list(flags))
    assert len(key) == 32
    int(key, 16)


@settings(max_examples=75)
@given(
    a=st.binary(max_size=256),
    b=st.binary(max_size=256),
    compiler=names,
    flags=flag_lists,
)
def test_compute_key_changes_with_source(a, b, compiler, flags):
    assume(a != b)
    assert compute_key(a, compiler, flags) != compute_key(b, compiler, flags)


@settings(max_examples=75)
@given(source=st.binary(max_size=128), c1=names, c2=names, flags=flag_lists)
def test_compute_key_changes_with_compiler(source, c1, c2, flags):
    assume(c1 != c2)
    assert compute_key(source, c1, flags) != compute_key(source, c2, flags)


@settings(max_examples=75)
@given(source=st.binary(max_size=128), f1=flag_lists, f2=flag_lists)
def test_compute_key_changes_with_flags(source, f1, f2):
    assume(f1 != f2)
    assert compute_key(source, "/usr/bin/gcc", f1) != compute_key(
        source, "/usr/bin/gcc", f2
    )


def test_compute_key_keeps_flag_boundaries():
    src = b"int main(){}"
    assert compute_key(src, "/cc", ["-ab", "c"]) != compute_key(
        src, "/cc", ["-a", "bc"]
    )
    assert compute_key(src, "/cc", ["-O2", "-g"]) != compute_key(
        src, "/cc", ["-g", "-O2"]
    )
    assert compute_key(src + b"/cc", "", []) != compute_key(src, "/cc", [])


def _executable(tmp_path: Path, content: bytes = b"\x7fELF binary") -> Artifact:
    path = tmp_path / "build" / "hello"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    path.chmod(0o755)
    return Artifact(kind=ArtifactKind.EXECUTABLE, path=path, files=(path,))


def _bundle(tmp_path: Path) -> Artifact:
    workdir = tmp_path / "classes"
    (workdir / "pkg").mkdir(parents=True)
    main = workdir / "Main.class"
    helper = workdir / "pkg" / "Helper.class"
    main.write_bytes(b"\xca\xfe\xba\xbe main")
    helper.write_bytes(b"\xca\xfe\xba\xbe helper")
    return Artifact(
        kind=ArtifactKind.ARCHIVE,
        path=workdir,
        workdir=workdir,
        files=(main, helper),
        entry="Main",
    )


def test_resolve_cache_directory_uses_xdg(tmp_path):
    env = {"XDG_CACHE_HOME": str(tmp_path / "xdg")}
    directory = resolve_cache_directory(env)
    assert directory == tmp_path / "xdg" / "ucode"
    assert directory.is_dir()
    assert resolve_cache_directory(env) == directory


def test_resolve_cache_directory_rejects_file(tmp_path):
    (tmp_path / "xdg").mkdir()
    (tmp_path / "xdg" / "ucode").write_text("not a dir")
    with pytest.raises(CacheError):
        resolve_cache_directory({"XDG_CACHE_HOME": str(tmp_path / "xdg")})


def test_executable_round_trip(tmp_path):
    store = CacheStore(tmp_path / "cache")
    artifact = _executable(tmp_path)
    key = compute_key(b"src", "/usr/bin/cc", ["-O2"])
    assert store.lookup(key, ArtifactKind.EXECUTABLE) is None

    stored = store.store(key, artifact)
    handle = store.lookup(key, ArtifactKind.EXECUTABLE)

    assert handle is not None
    assert handle.path == stored.path == tmp_path / "cache" / key
    assert handle.path.read_bytes() == artifact.path.read_bytes()
    assert os.access(handle.path, os.X_OK)
    assert not [p for p in handle.path.parent.iterdir() if p != handle.path]


def test_restored_executable_outlives_the_entry(tmp_path):
    store = CacheStore(tmp_path / "cache")
    key = compute_key(b"src", "/usr/bin/cc", [])
    store.store(key, _executable(tmp_path))
    handle = store.lookup(key, ArtifactKind.EXECUTABLE)

    (restored,) = store.restore(handle, tmp_path / "run", "hello")
    assert restored == tmp_path / "run" / "hello"
    assert os.access(restored, os.X_OK)

    assert store.evict_all() == 1
    assert restored.read_bytes() == b"\x7fELF binary"


def test_restore_of_vanished_executable_is_a_cache_error(tmp_path):
    store = CacheStore(tmp_path / "cache")
    key = compute_key(b"src", "/usr/bin/cc", [])
    store.store(key, _executable(tmp_path))
    handle = store.lookup(key, ArtifactKind.EXECUTABLE)
    store.evict_all()

    with pytest.raises(CacheError):
        store.restore(handle, tmp_path / "run", "hello")


def test_archive_round_trip_restores_complete_set(tmp_path):
    store = CacheStore(tmp_path / "cache")
    artifact = _bundle(tmp_path)
    store.store("a" * 32, artifact)
    handle = store.lookup("a" * 32, ArtifactKind.ARCHIVE)
    assert handle is not None
    assert handle.path.name == "a" * 32 + ".zip"

    dest = tmp_path / "restored"
    dest.mkdir()
    restored = store.restore(handle, dest)

    rel = sorted(p.relative_to(dest).as_posix() for p in restored)
    assert rel == ["Main.class", "pkg/Helper.class"]
    for original in artifact.files:
        target = dest / original.relative_to(artifact.workdir)
        assert target.read_bytes() == original.read_bytes()


def test_source_artifacts_are_never_stored(tmp_path):
    store = CacheStore(tmp_path / "cache")
    source = tmp_path / "x.py"
    source.write_text("print(1)\n")
    with pytest.raises(CacheError):
        store.store("k" * 32, Artifact(kind=ArtifactKind.SOURCE, path=source))


def test_entry_at_max_age_is_valid_and_one_second_older_is_evicted(tmp_path):
    now = [1_000_000.0]
    store = CacheStore(tmp_path / "cache", clock=lambda: now[0])
    key = "b" * 32
    handle = store.store(key, _executable(tmp_path))
    os.utime(handle.path, (now[0], now[0]))

    now[0] += DEFAULT_MAX_CACHE_AGE_S
    assert store.lookup(key, ArtifactKind.EXECUTABLE) is not None

    now[0] += 1
    assert store.lookup(key, ArtifactKind.EXECUTABLE) is None
    assert not handle.path.exists()


def test_eviction_is_idempotent(tmp_path):
    now = 5_000_000.0
    store = CacheStore(tmp_path / "cache", max_age_s=100, clock=lambda: now)
    for name, age in (("old1", 500), ("old2", 101), ("fresh", 10)):
        path = store.store(name, _executable(tmp_path)).path
        os.utime(path, (now - age, now - age))

    assert store.evict_older_than() == 2
    after_first = sorted(p.name for p in store.directory.iterdir())
    assert after_first == ["fresh"]

    assert store.evict_older_than() == 0
    assert sorted(p.name for p in store.directory.iterdir()) == after_first


def test_evict_all_clears_everything(tmp_path):
    store = CacheStore(tmp_path / "cache")
    store.store("one", _executable(tmp_path))
    store.store("two", _bundle(tmp_path))
    assert store.evict_all() == 2
    assert list(store.directory.iterdir()) == []
    assert store.evict_all() == 0


def test_sweep_runs_once_per_process(tmp_path):
    now = 10_000.0
    store = CacheStore(tmp_path / "cache", max_age_s=10, clock=lambda: now)
    stale = store.store("stale", _executable(tmp_path)).path
    os.utime(stale, (0, 0))
    assert store.sweep_once() == 1

    again = store.store("again", _executable(tmp_path)).path
    os.utime(again, (0, 0))
    other = CacheStore(tmp_path / "cache", max_age_s=10, clock=lambda: now)
    assert other.sweep_once() == 0
    assert again.exists()


def test_corrupt_archive_is_discarded(tmp_path):
    store = CacheStore(tmp_path / "cache")
    entry = store.entry_path("c" * 32, ArtifactKind.ARCHIVE)
    entry.write_bytes(b"definitely not a zip")
    handle = store.lookup("c" * 32, ArtifactKind.ARCHIVE)
    assert handle is not None
    with pytest.raises(CacheError):
        store.restore(handle, tmp_path)
    assert not entry.exists()


def test_archive_members_cannot_escape(tmp_path):
    store = CacheStore(tmp_path / "cache")
    entry = store.entry_path("d" * 32, ArtifactKind.ARCHIVE)
    with zipfile.ZipFile(entry, "w") as archive:
        archive.writestr("../escape.class", b"x")
    handle = store.lookup("d" * 32, ArtifactKind.ARCHIVE)
    dest = tmp_path / "dest"
    dest.mkdir()
    with pytest.raises(CacheError):
        store.restore(handle, dest)
    assert not (tmp_path / "escape.class").exists()


def test_non_executable_entry_is_a_miss(tmp_path):
    store = CacheStore(tmp_path / "cache")
    handle = store.store("e" * 32, _executable(tmp_path))
    handle.path.chmod(0o644)
    assert store.lookup("e" * 32, ArtifactKind.EXECUTABLE) is None


def test_concurrent_stores_of_same_key(tmp_path):
    store = CacheStore(tmp_path / "cache")
    key = "f" * 32
    artifacts = []
    for index in range(8):
        workdir = tmp_path / f"w{index}"
        artifacts.append(_executable(workdir, b"identical binary"))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda a: store.store(key, a), artifacts))

    handle = store.lookup(key, ArtifactKind.EXECUTABLE)
    assert handle is not None
    assert handle.path.read_bytes() == b"identical binary"
    assert [p.name for p in store.directory.iterdir()] == [key]


def test_cache_directory_that_is_a_file_raises_cache_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    store = CacheStore(blocker)
    with pytest.raises(CacheError):
        store.lookup("a" * 32, ArtifactKind.EXECUTABLE)
    with pytest.raises(CacheError):
        store.store("a" * 32, _executable(tmp_path))

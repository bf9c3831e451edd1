"""Expose the project root on sys.path and provide fake toolchains."""

from __future__ import annotations

import os
import sys
import textwrap

from dataclasses import dataclass
from pathlib import Path
from typing import List

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ucode.cache.store import _reset_sweep_guard  # noqa: E402
from ucode.languages import LanguageRegistry, LanguageSpec  # noqa: E402
from ucode.types import Strategy  # noqa: E402

# Fake C-style compiler: ``fakecc [flags] SOURCE -o OUTPUT``. The produced
# "binary" is a Python script printing the source's first line and argv.
FAKE_CC = """\
import os
import sys
import time

args = sys.argv[1:]
log = os.environ.get("FAKECC_LOG")
if log:
    with open(log, "a") as fh:
        fh.write(" ".join(args) + "\\n")
if os.environ.get("FAKECC_SLEEP"):
    time.sleep(float(os.environ["FAKECC_SLEEP"]))
out = args[args.index("-o") + 1]
src = [a for a in args if a.endswith(".fc")][0]
with open(src) as fh:
    text = fh.read()
if "syntax error" in text:
    sys.stdout.write(src + ":1:1: error: expected ';' before '}' token\\n")
    sys.exit(1)
if "no output" in text:
    sys.exit(0)
first = text.strip().splitlines()[0] if text.strip() else ""
with open(out, "w") as fh:
    fh.write("#!" + sys.executable + "\\n")
    fh.write("import sys\\n")
    fh.write("print(" + repr(first) + ")\\n")
    fh.write("if sys.argv[1:]:\\n")
    fh.write("    print('args:', ' '.join(sys.argv[1:]))\\n")
os.chmod(out, 0o755)
"""

# Fake bytecode compiler: ``fakejavac SOURCE -d DIR`` writes two class files.
FAKE_JAVAC = """\
import os
import sys

args = sys.argv[1:]
log = os.environ.get("FAKECC_LOG")
if log:
    with open(log, "a") as fh:
        fh.write(" ".join(args) + "\\n")
outdir = args[args.index("-d") + 1]
src = [a for a in args if a.endswith(".fj")][0]
with open(src) as fh:
    text = fh.read()
if "syntax error" in text:
    sys.stdout.write(src + ":3: error: ';' expected\\n")
    sys.exit(1)
if "no output" in text:
    sys.exit(0)
stem = os.path.splitext(os.path.basename(src))[0]
os.makedirs(os.path.join(outdir, "lib"), exist_ok=True)
with open(os.path.join(outdir, stem + ".class"), "w") as fh:
    fh.write(text)
with open(os.path.join(outdir, "lib", "Helper.class"), "w") as fh:
    fh.write("helper")
"""

# Fake runtime: ``fakejava -cp DIR MAIN`` needs every class file present.
FAKE_JAVA = """\
import os
import sys

args = sys.argv[1:]
classpath = args[args.index("-cp") + 1]
main = args[args.index("-cp") + 2]
rest = args[args.index("-cp") + 3:]
needed = [main + ".class", os.path.join("lib", "Helper.class")]
missing = [n for n in needed if not os.path.exists(os.path.join(classpath, n))]
if missing:
    sys.stderr.write("NoClassDefFoundError: " + ",".join(missing) + "\\n")
    sys.exit(1)
with open(os.path.join(classpath, main + ".class")) as fh:
    print(fh.read().strip().splitlines()[0])
if rest:
    print("args:", " ".join(rest))
"""


def _write_tool(bin_dir: Path, name: str, body: str) -> Path:
    path = bin_dir / name
    path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
    path.chmod(0o755)
    return path


@dataclass
class FakeToolchain:
    bin_dir: Path
    log: Path
    compiled: LanguageSpec
    bytecode: LanguageSpec
    script: LanguageSpec

    @property
    def registry(self) -> LanguageRegistry:
        return LanguageRegistry([self.compiled, self.bytecode, self.script])

    def invocations(self) -> List[str]:
        if not self.log.exists():
            return []
        return self.log.read_text().splitlines()


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep cache, config and runner variables away from the real user."""

    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg-cache"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    for key in list(os.environ):
        if key.startswith("RUNNER_") or key in {
            "CFLAGS",
            "CXXFLAGS",
            "RUSTFLAGS",
            "JAVACFLAGS",
        }:
            monkeypatch.delenv(key, raising=False)
    _reset_sweep_guard()
    yield
    _reset_sweep_guard()


@pytest.fixture()
def fake_toolchain(tmp_path, monkeypatch) -> FakeToolchain:
    bin_dir = tmp_path / "fakebin"
    bin_dir.mkdir()
    _write_tool(bin_dir, "fakecc", FAKE_CC)
    _write_tool(bin_dir, "fakejavac", FAKE_JAVAC)
    _write_tool(bin_dir, "fakejava", FAKE_JAVA)
    log = tmp_path / "compiler.log"
    monkeypatch.setenv("FAKECC_LOG", str(log))
    monkeypatch.setenv(
        "PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}"
    )
    compiled = LanguageSpec(
        extension="fc",
        strategy=Strategy.COMPILE,
        compiler="fakecc",
        flags_env="FAKEFLAGS",
        default_flags="-O1 -Wall",
        output_args=("-o", "{output}"),
    )
    bytecode = LanguageSpec(
        extension="fj",
        strategy=Strategy.COMPILE_TO_RUNTIME_ARTIFACT,
        compiler="fakejavac",
        runner="fakejava",
        flags_env="FAKEJFLAGS",
        output_args=("-d", "{workdir}"),
        artifact_glob="*.class",
        run_args=("-cp", "{workdir}", "{stem}"),
    )
    script = LanguageSpec(
        extension="py",
        strategy=Strategy.DIRECT,
        runner=sys.executable,
    )
    return FakeToolchain(
        bin_dir=bin_dir,
        log=log,
        compiled=compiled,
        bytecode=bytecode,
        script=script,
    )

"""Compile sources according to their language strategy."""

from __future__ import annotations

import logging
import shutil
import subprocess

from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence

from ucode.exceptions import CompileError, MissingToolchainError
from ucode.languages.base import LanguageSpec
from ucode.types import Artifact, ArtifactKind, Strategy

LOGGER = logging.getLogger(__name__)

Which = Callable[[str], Optional[str]]


def resolve_tool(name: str, which: Which = shutil.which) -> str:
    """Return the absolute path of ``name`` on PATH."""

    found = which(name)
    if not found:
        raise MissingToolchainError(name)
    return str(Path(found).resolve())


def resolve_flags(
    spec: LanguageSpec, overrides: Optional[Mapping[str, str]] = None
) -> List[str]:
    """Pick the flag string (a non-empty override beats the default).

    Splitting is plain whitespace tokenization; flags never pass through a
    shell.
    """

    overrides = overrides or {}
    value = spec.default_flags
    if spec.flags_env and overrides.get(spec.flags_env, "").strip():
        value = overrides[spec.flags_env]
    return value.split()


def _expand(template: Sequence[str], **values: str) -> List[str]:
    return [part.format(**values) for part in template]


class Builder:
    """Runs the compiler for one source inside a caller-provided directory."""

    def __init__(
        self,
        *,
        flag_overrides: Optional[Mapping[str, str]] = None,
        which: Which = shutil.which,
    ) -> None:
        self.flag_overrides = dict(flag_overrides or {})
        self._which = which

    def resolve_tool(self, name: str) -> str:
        return resolve_tool(name, self._which)

    def resolve_flags(self, spec: LanguageSpec) -> List[str]:
        return resolve_flags(spec, self.flag_overrides)

    def build(
        self,
        spec: LanguageSpec,
        source: Path,
        flags: Sequence[str],
        workdir: Path,
        *,
        compiler_path: Optional[str] = None,
    ) -> Artifact:
        source = source.resolve()
        if spec.strategy is Strategy.DIRECT:
            return Artifact(kind=ArtifactKind.SOURCE, path=source)

        compiler = compiler_path or self.resolve_tool(spec.compiler or "")
        workdir.mkdir(parents=True, exist_ok=True)
        output = workdir / (source.stem or "a.out")
        argv = [
            compiler,
            *flags,
            str(source),
            *_expand(
                spec.output_args,
                output=str(output),
                workdir=str(workdir),
                stem=source.stem,
                source=str(source),
            ),
        ]
        LOGGER.info("compiling %s with %s", source.name, " ".join(flags))
        LOGGER.debug("compiler argv: %s", argv)
        try:
            proc = subprocess.run(
                argv,
                cwd=str(workdir),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=False,
            )
        except OSError as exc:
            raise CompileError(
                f"failed to start compiler {compiler}: {exc}", output=str(exc)
            ) from exc
        text = proc.stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            raise CompileError(
                f"compilation failed for {source.name}",
                output=text,
                returncode=proc.returncode,
            )

        if spec.strategy is Strategy.COMPILE:
            if not output.is_file():
                raise CompileError(
                    f"compiler reported success but produced no {output.name}",
                    output=text,
                    returncode=proc.returncode,
                )
            return Artifact(
                kind=ArtifactKind.EXECUTABLE,
                path=output,
                workdir=workdir,
                files=(output,),
                entry=source.stem,
                compiler_output=text,
            )

        files = tuple(
            sorted(
                path
                for path in workdir.rglob(spec.artifact_glob or "*")
                if path.is_file()
            )
        )
        if not files:
            raise CompileError(
                f"compiler produced no {spec.artifact_glob} files "
                f"for {source.name}",
                output=text,
                returncode=proc.returncode,
            )
        return Artifact(
            kind=ArtifactKind.ARCHIVE,
            path=workdir,
            workdir=workdir,
            files=files,
            entry=source.stem,
            compiler_output=text,
        )


def launch_command(
    spec: LanguageSpec,
    artifact: Artifact,
    *,
    runner_path: Optional[str] = None,
) -> List[str]:
    """Build the argv prefix that starts an artifact (program args follow)."""

    if artifact.kind is ArtifactKind.EXECUTABLE:
        return [str(artifact.path)]
    runner = runner_path or spec.runner or ""
    if artifact.kind is ArtifactKind.SOURCE:
        return [runner, str(artifact.path)]
    workdir = artifact.workdir or artifact.path
    stem = artifact.entry or artifact.path.stem
    return [
        runner,
        *_expand(
            spec.run_args,
            workdir=str(workdir),
            stem=stem,
            source=str(artifact.path),
            output=str(artifact.path),
        ),
    ]


__all__ = ["Builder", "launch_command", "resolve_flags", "resolve_tool"]

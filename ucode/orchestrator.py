"""Top-level sequence: resolve, reuse or build, execute, report."""

from __future__ import annotations

import logging
import shlex
import tempfile

from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from ucode.build import Builder, launch_command
from ucode.cache import CacheStore
from ucode.configuration import RunnerSettings
from ucode.constants import EXIT_FAILURE, EXIT_TIMEOUT, SHELL_METACHARACTERS
from ucode.exceptions import CacheError, CompileError, ConfigError
from ucode.languages import LanguageRegistry, LanguageSpec
from ucode.runtime import Executor
from ucode.types import (
    Artifact,
    ArtifactKind,
    ExecutionRequest,
    Notice,
    Outcome,
    RunReport,
    RunStatus,
)

LOGGER = logging.getLogger(__name__)

StatusCallback = Callable[[RunStatus], None]


def inspect_arguments(args: Sequence[str]) -> List[Notice]:
    """Return warnings for arguments a shell would have interpreted.

    Arguments are always passed as separate argv entries; this only tells
    the user that e.g. ``a;b`` reaches the program literally.
    """

    warnings = []
    for arg in args:
        if any(char in SHELL_METACHARACTERS for char in arg):
            warnings.append(Notice("unsafe_arg", (shlex.quote(arg),)))
    return warnings


def format_arguments(args: Sequence[str]) -> str:
    return " ".join(shlex.quote(arg) for arg in args)


class Orchestrator:
    """Runs one source file end to end with the configured components."""

    def __init__(
        self,
        settings: Optional[RunnerSettings] = None,
        *,
        registry: Optional[LanguageRegistry] = None,
        cache: Optional[CacheStore] = None,
        builder: Optional[Builder] = None,
        executor: Optional[Executor] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> None:
        self.settings = settings or RunnerSettings()
        self.registry = registry or LanguageRegistry().with_overrides(
            self.settings.languages
        )
        self.cache = cache or CacheStore(
            self.settings.cache.directory,
            max_age_s=self.settings.cache.max_age_s,
        )
        self.builder = builder or Builder(
            flag_overrides=self.settings.flag_overrides
        )
        self.executor = executor or Executor(
            unsandboxed_memory_cap=self.settings.unsandboxed_memory_cap
        )
        self._on_status = on_status

    def _emit(self, status: RunStatus) -> None:
        LOGGER.debug("status: %s", status.value)
        if self._on_status is not None:
            self._on_status(status)

    def clear_cache(self) -> int:
        removed = self.cache.evict_all()
        LOGGER.info("removed %d cache entries", removed)
        return removed

    def run(
        self,
        source: Path,
        args: Sequence[str] = (),
        *,
        extension: Optional[str] = None,
        cwd: Optional[Path] = None,
    ) -> RunReport:
        source = Path(source)
        args = list(args)
        try:
            spec = self.registry.resolve(extension or source.suffix)
        except ConfigError as exc:
            self._emit(RunStatus.FAILED)
            return RunReport(
                status=RunStatus.FAILED,
                exit_code=EXIT_FAILURE,
                source=source,
                error=str(exc),
                error_notice=exc.notice,
            )

        warnings = inspect_arguments(args)
        for message in warnings:
            LOGGER.info(message)

        if self.settings.cache.enabled and spec.compiled:
            try:
                self.cache.sweep_once()
            except CacheError as exc:
                LOGGER.debug("cache sweep skipped: %s", exc)

        with tempfile.TemporaryDirectory(prefix="ucode-") as tmp:
            workdir = Path(tmp)
            try:
                artifact, cache_hit, key = self._prepare(
                    spec, source, workdir
                )
                runner = None
                if artifact.kind is not ArtifactKind.EXECUTABLE:
                    runner = self.builder.resolve_tool(spec.runner or "")
            except CompileError as exc:
                LOGGER.info("compile failed: %s", exc)
                self._emit(RunStatus.FAILED)
                return RunReport(
                    status=RunStatus.FAILED,
                    exit_code=EXIT_FAILURE,
                    source=source,
                    language=spec,
                    compile_output=exc.output,
                    error=str(exc),
                    warnings=warnings,
                )
            except ConfigError as exc:
                self._emit(RunStatus.FAILED)
                return RunReport(
                    status=RunStatus.FAILED,
                    exit_code=EXIT_FAILURE,
                    source=source,
                    language=spec,
                    error=str(exc),
                    error_notice=exc.notice,
                    warnings=warnings,
                )

            command = launch_command(spec, artifact, runner_path=runner)
            self._emit(RunStatus.EXECUTING)
            result = self.executor.run(
                ExecutionRequest(
                    command=command,
                    args=args,
                    cwd=cwd or Path.cwd(),
                    timeout_s=self.settings.timeout_s,
                    memory_limit_bytes=self.settings.memory_limit_bytes,
                    sandbox=self.settings.sandbox,
                    merge_stderr=self.settings.merge_stderr,
                )
            )

        if result.outcome is Outcome.SUCCESS:
            status = RunStatus.SUCCESS
        elif result.outcome is Outcome.TIMED_OUT:
            status = RunStatus.TIMED_OUT
        else:
            status = RunStatus.FAILED
        self._emit(status)
        return RunReport(
            status=status,
            exit_code=(
                EXIT_TIMEOUT if status is RunStatus.TIMED_OUT
                else result.exit_code
            ),
            source=source,
            language=spec,
            result=result,
            compile_output=artifact.compiler_output,
            cache_hit=cache_hit,
            cache_key=key,
            warnings=[*warnings, *result.warnings],
        )

    def _prepare(
        self, spec: LanguageSpec, source: Path, workdir: Path
    ) -> Tuple[Artifact, bool, Optional[str]]:
        if not spec.compiled:
            return self.builder.build(spec, source, (), workdir), False, None

        compiler = self.builder.resolve_tool(spec.compiler or "")
        flags = self.builder.resolve_flags(spec)
        key = None
        if self.settings.cache.enabled:
            try:
                source_bytes = source.read_bytes()
            except OSError as exc:
                raise ConfigError(f"cannot read {source}: {exc}") from exc
            key = self.cache.compute_key(source_bytes, compiler, flags)
            cached = self._from_cache(spec, key, source, workdir)
            if cached is not None:
                self._emit(RunStatus.USING_CACHE)
                return cached, True, key

        self._emit(RunStatus.COMPILING)
        artifact = self.builder.build(
            spec, source, flags, workdir / "build", compiler_path=compiler
        )
        if key is not None:
            try:
                self.cache.store(key, artifact)
            except CacheError as exc:
                LOGGER.debug("not caching build of %s: %s", source, exc)
        return artifact, False, key

    def _from_cache(
        self,
        spec: LanguageSpec,
        key: str,
        source: Path,
        workdir: Path,
    ) -> Optional[Artifact]:
        try:
            handle = self.cache.lookup(key, spec.artifact_kind)
            if handle is None:
                return None
            restored = workdir / "restored"
            files = self.cache.restore(handle, restored, source.stem)
        except CacheError as exc:
            LOGGER.debug("cache lookup for %s failed: %s", key, exc)
            return None
        if handle.kind is ArtifactKind.EXECUTABLE:
            return Artifact(
                kind=ArtifactKind.EXECUTABLE,
                path=files[0],
                workdir=restored,
                files=tuple(files),
                entry=source.stem,
            )
        return Artifact(
            kind=ArtifactKind.ARCHIVE,
            path=restored,
            workdir=restored,
            files=tuple(files),
            entry=source.stem,
        )


__all__ = ["Orchestrator", "format_arguments", "inspect_arguments"]

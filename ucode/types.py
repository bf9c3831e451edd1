"""Core dataclasses shared by the builder, executor and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from ucode.constants import (
    EXIT_FAILURE,
    EXIT_SIGNAL_BASE,
    EXIT_SUCCESS,
    EXIT_TIMEOUT,
)

if TYPE_CHECKING:  # pragma: no cover
    from ucode.languages.base import LanguageSpec


class Strategy(str, Enum):
    DIRECT = "direct"
    COMPILE = "compile"
    COMPILE_TO_RUNTIME_ARTIFACT = "compile_to_runtime_artifact"


class ArtifactKind(str, Enum):
    SOURCE = "source"
    EXECUTABLE = "executable"
    ARCHIVE = "archive"


class Outcome(str, Enum):
    SUCCESS = "success"
    NONZERO_EXIT = "nonzero_exit"
    TIMED_OUT = "timed_out"
    SIGNALED = "signaled"


class RunStatus(str, Enum):
    """Events the presentation layer is allowed to observe."""

    COMPILING = "compiling"
    USING_CACHE = "using_cache"
    EXECUTING = "executing"
    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class Artifact:
    """Result of a build: a source file, a binary, or a set of runtime files."""

    kind: ArtifactKind
    path: Path
    workdir: Optional[Path] = None
    files: Tuple[Path, ...] = ()
    entry: str = ""
    compiler_output: str = ""


@dataclass(frozen=True)
class Notice:
    """A user-facing warning or error: a message catalog key plus its args.

    The core only records notices; the console renders them in the selected
    language. ``str()`` gives the English text for logs.
    """

    code: str
    args: Tuple[str, ...] = ()

    def render(self, language: str = "en") -> str:
        from ucode.ui.messages import get_message

        return get_message(self.code, *self.args, language=language)

    def __str__(self) -> str:
        return self.render()


@dataclass
class ExecutionRequest:
    command: List[str]
    args: List[str] = field(default_factory=list)
    cwd: Optional[Path] = None
    timeout_s: float = 0
    memory_limit_bytes: int = 0
    sandbox: bool = False
    merge_stderr: bool = True
    env: Optional[Dict[str, str]] = None

    @property
    def argv(self) -> List[str]:
        return [*self.command, *self.args]


@dataclass
class ExecutionResult:
    outcome: Outcome
    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    duration_s: float = 0.0
    signal: Optional[int] = None
    sandbox: Optional[str] = None
    warnings: List[Notice] = field(default_factory=list)

    @property
    def output(self) -> str:
        if not self.stderr:
            return self.stdout
        if not self.stdout:
            return self.stderr
        return self.stdout + self.stderr

    @property
    def exit_code(self) -> int:
        if self.outcome is Outcome.SUCCESS:
            return EXIT_SUCCESS
        if self.outcome is Outcome.TIMED_OUT:
            return EXIT_TIMEOUT
        if self.outcome is Outcome.SIGNALED:
            return EXIT_SIGNAL_BASE + (self.signal or 0)
        return self.returncode if self.returncode else EXIT_FAILURE


@dataclass
class RunReport:
    """Final result handed to the CLI and presentation layer."""

    status: RunStatus
    exit_code: int
    source: Optional[Path] = None
    language: Optional["LanguageSpec"] = None
    result: Optional[ExecutionResult] = None
    compile_output: str = ""
    error: Optional[str] = None
    error_notice: Optional[Notice] = None
    cache_hit: bool = False
    cache_key: Optional[str] = None
    warnings: List[Notice] = field(default_factory=list)

    @property
    def output(self) -> str:
        if self.result is not None:
            return self.result.output
        return self.compile_output


__all__ = [
    "Strategy",
    "ArtifactKind",
    "Outcome",
    "RunStatus",
    "Artifact",
    "Notice",
    "ExecutionRequest",
    "ExecutionResult",
    "RunReport",
]

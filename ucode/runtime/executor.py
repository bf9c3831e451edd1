"""Run a prepared command under a deadline and optional sandbox."""

from __future__ import annotations

import logging
import os
import resource
import shutil
import signal
import subprocess
import tempfile
import time

from pathlib import Path
from typing import Callable, List, Optional

from ucode.constants import KILL_GRACE_S
from ucode.types import ExecutionRequest, ExecutionResult, Notice, Outcome

from .sandbox import (
    DetectedSandbox,
    Which,
    detect_available_sandbox,
    wrap_command,
)

LOGGER = logging.getLogger(__name__)

EXIT_COMMAND_NOT_FOUND = 127

Detector = Callable[[Which], Optional[DetectedSandbox]]


def _memory_limiter(limit_bytes: int) -> Callable[[], None]:
    def _apply() -> None:
        resource.setrlimit(resource.RLIMIT_AS, (limit_bytes, limit_bytes))

    return _apply


def _signal_group(proc: subprocess.Popen, sig: int) -> None:
    try:
        os.killpg(proc.pid, sig)
    except ProcessLookupError:
        pass


def _read(path: Path) -> str:
    if not path.exists():
        return ""
    return path.read_bytes().decode("utf-8", errors="replace")


class Executor:
    """Spawns one program per call in its own process group.

    Output goes to files rather than pipes so whatever the program wrote
    before a kill is still available afterwards.
    """

    def __init__(
        self,
        *,
        kill_grace_s: float = KILL_GRACE_S,
        unsandboxed_memory_cap: bool = False,
        which: Which = shutil.which,
        detect: Detector = detect_available_sandbox,
    ) -> None:
        self.kill_grace_s = kill_grace_s
        self.unsandboxed_memory_cap = unsandboxed_memory_cap
        self._which = which
        self._detect = detect

    def run(self, request: ExecutionRequest) -> ExecutionResult:
        warnings: List[Notice] = []
        cwd = Path(request.cwd) if request.cwd is not None else Path.cwd()
        argv = request.argv
        sandbox_name: Optional[str] = None
        preexec: Optional[Callable[[], None]] = None

        if request.sandbox:
            detected = self._detect(self._which)
            if detected is None:
                warnings.append(Notice("no_sandbox_tech"))
                warnings.append(Notice("install_sandbox"))
            else:
                sandbox_name = detected.name
                argv = wrap_command(
                    detected, request.memory_limit_bytes, argv, cwd
                )
                if (
                    request.memory_limit_bytes
                    and not detected.adapter.enforces_memory
                ):
                    warnings.append(
                        Notice("sandbox_ignores_memory", (detected.name,))
                    )

        if sandbox_name is None and request.memory_limit_bytes:
            if self.unsandboxed_memory_cap:
                preexec = _memory_limiter(request.memory_limit_bytes)
            else:
                warnings.append(Notice("memory_not_enforced"))

        for message in warnings:
            LOGGER.info(message)
        LOGGER.debug("executing %s in %s", argv, cwd)

        with tempfile.TemporaryDirectory(prefix="ucode-io-") as capture:
            stdout_path = Path(capture) / "stdout"
            stderr_path = Path(capture) / "stderr"
            started = time.monotonic()
            with stdout_path.open("wb") as f_out:
                f_err = (
                    None if request.merge_stderr else stderr_path.open("wb")
                )
                try:
                    try:
                        proc = subprocess.Popen(
                            argv,
                            cwd=str(cwd),
                            stdout=f_out,
                            stderr=(
                                subprocess.STDOUT if f_err is None else f_err
                            ),
                            start_new_session=True,
                            env=request.env,
                            preexec_fn=preexec,
                        )
                    except OSError as exc:
                        LOGGER.error("cannot start %s: %s", argv[0], exc)
                        return ExecutionResult(
                            outcome=Outcome.NONZERO_EXIT,
                            returncode=EXIT_COMMAND_NOT_FOUND,
                            stderr=f"{argv[0]}: {exc}\n",
                            duration_s=time.monotonic() - started,
                            sandbox=sandbox_name,
                            warnings=warnings,
                        )
                    timed_out = self._wait(proc, request.timeout_s)
                finally:
                    if f_err is not None:
                        f_err.close()
            duration = time.monotonic() - started
            stdout = _read(stdout_path)
            stderr = "" if request.merge_stderr else _read(stderr_path)

        rc = proc.returncode
        if timed_out:
            outcome, sig = Outcome.TIMED_OUT, None
            LOGGER.info("program timed out after %ss", request.timeout_s)
        elif rc == 0:
            outcome, sig = Outcome.SUCCESS, None
        elif rc < 0:
            outcome, sig = Outcome.SIGNALED, -rc
        else:
            outcome, sig = Outcome.NONZERO_EXIT, None
        return ExecutionResult(
            outcome=outcome,
            returncode=rc,
            stdout=stdout,
            stderr=stderr,
            duration_s=duration,
            signal=sig,
            sandbox=sandbox_name,
            warnings=warnings,
        )

    def _wait(self, proc: subprocess.Popen, timeout_s: float) -> bool:
        """Wait for ``proc``; returns True when the deadline killed it."""

        try:
            proc.wait(timeout=timeout_s if timeout_s > 0 else None)
            return False
        except subprocess.TimeoutExpired:
            self._terminate(proc)
            return True
        except KeyboardInterrupt:
            self._terminate(proc)
            raise

    def _terminate(self, proc: subprocess.Popen) -> None:
        _signal_group(proc, signal.SIGTERM)
        try:
            proc.wait(timeout=self.kill_grace_s)
        except subprocess.TimeoutExpired:
            LOGGER.debug("process group %d ignored SIGTERM", proc.pid)
            _signal_group(proc, signal.SIGKILL)
            proc.wait()


__all__ = ["EXIT_COMMAND_NOT_FOUND", "Executor"]

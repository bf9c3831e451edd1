"""Adapters for external sandbox tools.

The runner never implements isolation itself. It detects the first tool in
``SANDBOX_PREFERENCE`` that is installed and asks it to wrap the command.
"""

from __future__ import annotations

import shutil

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from ucode.constants import DEFAULT_SANDBOX_MEMORY_MB

Which = Callable[[str], Optional[str]]

_MB = 1024 * 1024


def effective_memory_bytes(memory_limit_bytes: int) -> int:
    if memory_limit_bytes > 0:
        return memory_limit_bytes
    return DEFAULT_SANDBOX_MEMORY_MB * _MB


@dataclass(frozen=True)
class SandboxAdapter:
    """Base adapter; subclasses translate limits into tool flags."""

    name: str
    executable: str
    enforces_memory: bool = True

    def available(self, which: Which = shutil.which) -> Optional[str]:
        return which(self.executable)

    def wrap(
        self,
        tool_path: str,
        memory_limit_bytes: int,
        argv: Sequence[str],
        cwd: Path,
    ) -> List[str]:  # pragma: no cover - abstract
        raise NotImplementedError


class FirejailAdapter(SandboxAdapter):
    def wrap(self, tool_path, memory_limit_bytes, argv, cwd):
        return [
            tool_path,
            "--quiet",
            "--net=none",
            "--caps.drop=all",
            "--seccomp",
            "--noroot",
            "--private-tmp",
            "--rlimit-fsize=10000000",
            "--rlimit-nproc=50",
            "--rlimit-nofile=100",
            f"--rlimit-as={effective_memory_bytes(memory_limit_bytes)}",
            *argv,
        ]


class NsjailAdapter(SandboxAdapter):
    def wrap(self, tool_path, memory_limit_bytes, argv, cwd):
        memory_mb = max(1, effective_memory_bytes(memory_limit_bytes) // _MB)
        return [
            tool_path,
            "--mode",
            "o",
            "--quiet",
            "--chroot",
            "/",
            "--cwd",
            str(cwd),
            "--bindmount",
            f"{cwd}:{cwd}",
            "--time_limit",
            "0",
            "--rlimit_as",
            str(memory_mb),
            "--rlimit_nproc",
            "50",
            "--rlimit_nofile",
            "100",
            "--",
            *argv,
        ]


class BubblewrapAdapter(SandboxAdapter):
    def wrap(self, tool_path, memory_limit_bytes, argv, cwd):
        return [
            tool_path,
            "--ro-bind",
            "/",
            "/",
            "--dev",
            "/dev",
            "--proc",
            "/proc",
            "--tmpfs",
            "/tmp",
            "--bind",
            str(cwd),
            str(cwd),
            "--chdir",
            str(cwd),
            "--unshare-all",
            "--die-with-parent",
            "--new-session",
            "--",
            *argv,
        ]


class SystemdRunAdapter(SandboxAdapter):
    def wrap(self, tool_path, memory_limit_bytes, argv, cwd):
        memory_mb = max(1, effective_memory_bytes(memory_limit_bytes) // _MB)
        command = list(argv)
        # the unit does not inherit our PATH lookup
        if command and Path(command[0]).is_file():
            command[0] = str(Path(command[0]).resolve())
        return [
            tool_path,
            "--pipe",
            "--collect",
            "--quiet",
            "--property=NoNewPrivileges=yes",
            "--property=PrivateDevices=yes",
            "--property=PrivateNetwork=yes",
            "--property=PrivateTmp=yes",
            "--property=ProtectHome=read-only",
            "--property=ProtectSystem=strict",
            f"--property=WorkingDirectory={cwd}",
            f"--property=ReadWritePaths={cwd}",
            f"--property=MemoryMax={memory_mb}M",
            *command,
        ]


SANDBOX_ADAPTERS: Dict[str, SandboxAdapter] = {
    "firejail": FirejailAdapter("firejail", "firejail"),
    "nsjail": NsjailAdapter("nsjail", "nsjail"),
    "bubblewrap": BubblewrapAdapter(
        "bubblewrap", "bwrap", enforces_memory=False
    ),
    "systemd-run": SystemdRunAdapter("systemd-run", "systemd-run"),
}

SANDBOX_PREFERENCE: List[str] = [
    "firejail",
    "nsjail",
    "bubblewrap",
    "systemd-run",
]


def register_sandbox(adapter: SandboxAdapter, *, priority: int = -1) -> None:
    """Add an adapter; ``priority`` is its index in the preference list."""

    SANDBOX_ADAPTERS[adapter.name] = adapter
    if adapter.name in SANDBOX_PREFERENCE:
        SANDBOX_PREFERENCE.remove(adapter.name)
    if priority < 0:
        SANDBOX_PREFERENCE.append(adapter.name)
    else:
        SANDBOX_PREFERENCE.insert(priority, adapter.name)


def unregister_sandbox(name: str) -> None:
    SANDBOX_ADAPTERS.pop(name, None)
    if name in SANDBOX_PREFERENCE:
        SANDBOX_PREFERENCE.remove(name)


@dataclass(frozen=True)
class DetectedSandbox:
    adapter: SandboxAdapter
    tool_path: str

    @property
    def name(self) -> str:
        return self.adapter.name


def detect_available_sandbox(
    which: Which = shutil.which,
    preference: Optional[Sequence[str]] = None,
) -> Optional[DetectedSandbox]:
    """Return the first installed sandbox in preference order, if any."""

    for name in preference or SANDBOX_PREFERENCE:
        adapter = SANDBOX_ADAPTERS.get(name)
        if adapter is None:
            continue
        tool_path = adapter.available(which)
        if tool_path:
            return DetectedSandbox(adapter=adapter, tool_path=tool_path)
    return None


def wrap_command(
    sandbox: DetectedSandbox,
    memory_limit_bytes: int,
    argv: Sequence[str],
    cwd: Path,
) -> List[str]:
    return sandbox.adapter.wrap(
        sandbox.tool_path, memory_limit_bytes, argv, cwd
    )


__all__ = [
    "SandboxAdapter",
    "FirejailAdapter",
    "NsjailAdapter",
    "BubblewrapAdapter",
    "SystemdRunAdapter",
    "DetectedSandbox",
    "SANDBOX_ADAPTERS",
    "SANDBOX_PREFERENCE",
    "detect_available_sandbox",
    "effective_memory_bytes",
    "register_sandbox",
    "unregister_sandbox",
    "wrap_command",
]

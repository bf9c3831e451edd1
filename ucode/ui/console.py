"""Rich-based terminal rendering of run events and results."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ucode.languages import LanguageSpec
from ucode.types import ArtifactKind, RunReport, RunStatus

from .messages import get_message

COLORS = {
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "info": "cyan",
    "muted": "dim",
}


class ConsoleReporter:
    """Presents run progress; never influences control flow.

    Status lines go to stderr and the program output panel to stdout, so
    piping ``ucode`` still yields the program's text.
    """

    def __init__(
        self,
        *,
        language: str = "en",
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
        supported: Iterable[str] = (),
    ) -> None:
        self.language = language
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)
        self.supported = sorted(supported)
        self._spinner = None
        self._source: Optional[Path] = None
        self._spec: Optional[LanguageSpec] = None
        self._flags: Optional[str] = None

    def msg(self, key: str, *args: object) -> str:
        return get_message(key, *args, language=self.language)

    def _line(self, text: str, color: str = "info") -> None:
        self.err_console.print(Text(text, style=COLORS[color]))

    def info(self, text: str) -> None:
        self._line(text, "info")

    def warning(self, text: str) -> None:
        self._line(self.msg("warning", text), "warning")

    def error(self, text: str) -> None:
        self._line(self.msg("error", text), "error")

    def announce(
        self,
        source: Path,
        spec: Optional[LanguageSpec] = None,
        *,
        timeout_s: int = 0,
        memory_limit_mb: int = 0,
        sandbox: Optional[str] = None,
        flags: Optional[str] = None,
    ) -> None:
        self._source = source
        self._spec = spec
        self._flags = flags
        self.info(self.msg("preparing_to_execute", source))
        if timeout_s:
            self.info(self.msg("time_limit", timeout_s))
        if memory_limit_mb:
            self.info(self.msg("memory_limit", memory_limit_mb))
        if sandbox:
            self.info(self.msg("sandbox_mode", sandbox))

    def on_status(self, status: RunStatus) -> None:
        self._stop_spinner()
        name = self._source.name if self._source else ""
        if status is RunStatus.COMPILING:
            if self._flags:
                self.info(self.msg("compiling_with_flags", name, self._flags))
            self._spinner = self.err_console.status(
                self.msg("compiling", name), spinner="dots"
            )
            self._spinner.start()
        elif status is RunStatus.USING_CACHE:
            archive = (
                self._spec is not None
                and self._spec.artifact_kind is ArtifactKind.ARCHIVE
            )
            self.info(
                self.msg(
                    "using_cached_compilation"
                    if archive
                    else "using_cached_binary"
                )
            )
        elif status is RunStatus.EXECUTING:
            self.info(self.msg("executing"))

    def _stop_spinner(self) -> None:
        if self._spinner is not None:
            self._spinner.stop()
            self._spinner = None

    def report(self, report: RunReport) -> None:
        self._stop_spinner()
        for notice in report.warnings:
            self.warning(notice.render(self.language))
        result = report.result
        if result is None:
            self._report_failure(report)
            return
        self.console.print(
            Panel(
                Text(result.output.rstrip("\n")),
                title=self.msg("program_output"),
                title_align="left",
                border_style=COLORS["muted"],
            )
        )
        if report.status is RunStatus.SUCCESS:
            self._line(self.msg("program_completed_full"), "success")
        elif report.status is RunStatus.TIMED_OUT:
            self._line(self.msg("program_timed_out_full"), "error")
        elif result.signal is not None:
            self._line(
                self.msg("program_killed_by_signal", result.signal), "error"
            )
        else:
            self._line(
                self.msg("program_exited_with_code_full", report.exit_code),
                "warning",
            )
        self._line(self.msg("duration", result.duration_s), "muted")

    def _report_failure(self, report: RunReport) -> None:
        name = report.source.name if report.source else ""
        if report.compile_output:
            self.error(self.msg("compilation_failed", name))
            self.err_console.print(
                Panel(
                    Text(report.compile_output.rstrip("\n")),
                    title=self.msg("compiler_output"),
                    title_align="left",
                    border_style=COLORS["error"],
                )
            )
            return
        notice = report.error_notice
        if notice is not None:
            self.error(notice.render(self.language))
            if notice.code == "required_command_not_found":
                self.info(self.msg("please_install"))
        elif report.error:
            self.error(report.error)
        if report.language is None and self.supported:
            self.show_supported(self.supported)

    def show_supported(self, extensions: Sequence[str]) -> None:
        listing = " ".join(f".{ext}" for ext in extensions)
        self.info(self.msg("supported_types", listing))

    def list_languages(self, specs: Iterable[LanguageSpec]) -> None:
        table = Table(title=self.msg("supported_languages"))
        table.add_column("ext")
        table.add_column("strategy")
        table.add_column("compiler")
        table.add_column("runner")
        table.add_column("flags")
        for spec in specs:
            flags = spec.default_flags
            if spec.flags_env:
                flags = f"${spec.flags_env} | {flags}" if flags else (
                    f"${spec.flags_env}"
                )
            table.add_row(
                f".{spec.extension}",
                spec.strategy.value,
                spec.compiler or "",
                spec.runner or "",
                flags,
            )
        self.console.print(table)


__all__ = ["COLORS", "ConsoleReporter"]

import io

from rich.console import Console

from ucode.languages import LanguageRegistry
from ucode.types import (
    ExecutionResult,
    Notice,
    Outcome,
    RunReport,
    RunStatus,
)
from ucode.ui import MESSAGES, ConsoleReporter, get_message, resolve_locale


def test_catalogs_have_the_same_keys():
    assert set(MESSAGES["en"]) == set(MESSAGES["zh"])


def test_get_message_formats_arguments():
    assert get_message("program_exited_with_code_full", 3) == (
        "Program exited with code 3"
    )
    assert get_message("program_exited_with_code_full", 3, language="zh") == (
        "程序退出，返回代码 3"
    )
    assert get_message("no_such_key") == "no_such_key"
    assert get_message("program_output", language="xx") == "Program Output"


def test_resolve_locale():
    assert resolve_locale("zh", env={}) == "zh"
    assert resolve_locale("en", env={"LANG": "zh_CN.UTF-8"}) == "en"
    assert resolve_locale("auto", env={"LANG": "zh_CN.UTF-8"}) == "zh"
    assert resolve_locale("auto", env={"LC_ALL": "C", "LANG": "zh_TW"}) == "en"
    assert resolve_locale(None, env={}) == "en"


def _reporter(language="en"):
    out, err = io.StringIO(), io.StringIO()
    reporter = ConsoleReporter(
        language=language,
        console=Console(file=out, width=100, color_system=None),
        err_console=Console(file=err, width=100, color_system=None),
        supported=LanguageRegistry().extensions(),
    )
    return reporter, out, err


def test_reporter_renders_success_panel():
    reporter, out, err = _reporter()
    reporter.report(
        RunReport(
            status=RunStatus.SUCCESS,
            exit_code=0,
            result=ExecutionResult(
                outcome=Outcome.SUCCESS, returncode=0, stdout="hi [bold]\n"
            ),
        )
    )
    assert "Program Output" in out.getvalue()
    assert "hi [bold]" in out.getvalue()
    assert "Program completed successfully" in err.getvalue()


def test_reporter_renders_timeout_and_exit_codes():
    reporter, _, err = _reporter("zh")
    reporter.report(
        RunReport(
            status=RunStatus.TIMED_OUT,
            exit_code=124,
            result=ExecutionResult(outcome=Outcome.TIMED_OUT, returncode=-15),
        )
    )
    assert "程序执行超时" in err.getvalue()

    reporter, _, err = _reporter()
    reporter.report(
        RunReport(
            status=RunStatus.FAILED,
            exit_code=137,
            result=ExecutionResult(
                outcome=Outcome.SIGNALED, returncode=-9, signal=9
            ),
        )
    )
    assert "killed by signal 9" in err.getvalue()


def test_reporter_shows_compiler_output_and_supported_types(tmp_path):
    reporter, _, err = _reporter()
    reporter.report(
        RunReport(
            status=RunStatus.FAILED,
            exit_code=1,
            source=tmp_path / "bad.c",
            compile_output="bad.c:1: error: expected ';'\n",
            error="compilation failed for bad.c",
        )
    )
    text = err.getvalue()
    assert "Compilation failed for bad.c." in text
    assert "error: expected ';'" in text

    reporter, _, err = _reporter()
    reporter.report(
        RunReport(
            status=RunStatus.FAILED,
            exit_code=1,
            error="unsupported file type '.xyz'",
        )
    )
    assert "Supported types are:" in err.getvalue()
    assert ".java" in err.getvalue()


def test_reporter_status_events(tmp_path):
    registry = LanguageRegistry()
    reporter, _, err = _reporter()
    reporter.announce(
        tmp_path / "Main.java",
        registry.resolve("java"),
        timeout_s=5,
        memory_limit_mb=256,
        sandbox="firejail",
    )
    reporter.on_status(RunStatus.COMPILING)
    reporter.on_status(RunStatus.USING_CACHE)
    reporter.on_status(RunStatus.EXECUTING)
    text = err.getvalue()
    assert "Time limit: 5s" in text
    assert "Memory limit: 256 MB" in text
    assert "firejail" in text
    assert "cached class files" in text
    assert "Executing..." in text


def test_list_languages_table():
    reporter, out, _ = _reporter()
    reporter.list_languages(LanguageRegistry())
    text = out.getvalue()
    assert ".c" in text and "gcc" in text and "$CFLAGS" in text


def test_notices_render_in_selected_language(tmp_path):
    reporter, _, err = _reporter("zh")
    reporter.report(
        RunReport(
            status=RunStatus.SUCCESS,
            exit_code=0,
            result=ExecutionResult(outcome=Outcome.SUCCESS, returncode=0),
            warnings=[
                Notice("memory_not_enforced"),
                Notice("unsafe_arg", ("'a;b'",)),
            ],
        )
    )
    text = err.getvalue()
    assert "警告: 没有沙箱时不会强制执行内存限制" in text
    assert "检测到潜在不安全的参数: 'a;b'" in text

    reporter, _, err = _reporter("zh")
    reporter.report(
        RunReport(
            status=RunStatus.FAILED,
            exit_code=1,
            source=tmp_path / "main.rs",
            language=LanguageRegistry().resolve("rs"),
            error="required command not found: rustc",
            error_notice=Notice("required_command_not_found", ("rustc",)),
        )
    )
    text = err.getvalue()
    assert "错误: 未找到所需命令: rustc" in text
    assert "请安装它" in text
    assert "required command" not in text


def test_notice_str_is_english():
    notice = Notice("sandbox_ignores_memory", ("bubblewrap",))
    assert str(notice) == "bubblewrap cannot enforce the memory limit"
    assert notice.render("zh") == "bubblewrap 无法强制执行内存限制"


def test_compiling_line_shows_flags(tmp_path):
    registry = LanguageRegistry()
    reporter, _, err = _reporter()
    reporter.announce(tmp_path / "hello.c", registry.resolve("c"), flags="-O2")
    reporter.on_status(RunStatus.COMPILING)
    reporter.on_status(RunStatus.EXECUTING)
    assert "Compiling hello.c with flags: -O2" in err.getvalue()

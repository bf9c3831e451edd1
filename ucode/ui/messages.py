"""English and Chinese user-facing strings."""

from __future__ import annotations

import os

from typing import Dict, Mapping, Optional

MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "time_limit": "Time limit: {0}s",
        "memory_limit": "Memory limit: {0} MB",
        "using_cached_binary": "Using previously compiled cached binary",
        "using_cached_compilation": (
            "Using previously compiled cached class files"
        ),
        "compiling": "Compiling {0}...",
        "compiling_with_flags": "Compiling {0} with flags: {1}",
        "executing": "Executing...",
        "compilation_failed": "Compilation failed for {0}.",
        "compiler_output": "Compiler Output",
        "cache_cleaned": "Compilation cache cleaned ({0} entries removed)",
        "unsafe_arg": (
            "Potentially unsafe argument detected: {0} (passed to the "
            "program literally, never through a shell)"
        ),
        "using_file": "Using specified file: {0}",
        "auto_selected_file": "Auto-selected file: {0}",
        "preparing_to_execute": "Preparing to execute: {0}",
        "unsupported_file_type": "Unsupported file type: {0}",
        "supported_types": "Supported types are: {0}",
        "required_command_not_found": "Required command not found: {0}",
        "please_install": "Please install it and make sure it's in your PATH.",
        "sandbox_mode": "Running in sandbox mode with {0}",
        "no_sandbox_tech": (
            "No sandbox technology found, code will run without sandbox "
            "protection."
        ),
        "install_sandbox": (
            "Please install firejail, nsjail, bubblewrap, or use systemd for "
            "sandbox support."
        ),
        "sandbox_ignores_memory": "{0} cannot enforce the memory limit",
        "memory_not_enforced": (
            "Memory limit is not enforced without a sandbox"
        ),
        "program_output": "Program Output",
        "program_completed_full": "Program completed successfully",
        "program_timed_out_full": "Program execution timed out",
        "program_exited_with_code_full": "Program exited with code {0}",
        "program_killed_by_signal": "Program was killed by signal {0}",
        "duration": "Finished in {0:.2f}s",
        "supported_languages": "Supported languages",
        "error": "Error: {0}",
        "warning": "Warning: {0}",
    },
    "zh": {
        "time_limit": "时间限制: {0}秒",
        "memory_limit": "内存限制: {0} MB",
        "using_cached_binary": "使用之前编译的缓存二进制文件",
        "using_cached_compilation": "使用之前编译的缓存类文件",
        "compiling": "正在编译 {0}...",
        "compiling_with_flags": "正在使用以下选项编译 {0}: {1}",
        "executing": "正在执行...",
        "compilation_failed": "{0} 编译失败。",
        "compiler_output": "编译器输出",
        "cache_cleaned": "编译缓存已清理（删除了 {0} 项）",
        "unsafe_arg": "检测到潜在不安全的参数: {0}（按原样传递给程序，不经过 shell）",
        "using_file": "使用指定的文件: {0}",
        "auto_selected_file": "自动选择的文件: {0}",
        "preparing_to_execute": "准备执行: {0}",
        "unsupported_file_type": "不支持的文件类型: {0}",
        "supported_types": "支持的类型有: {0}",
        "required_command_not_found": "未找到所需命令: {0}",
        "please_install": "请安装它并确保它在您的 PATH 中。",
        "sandbox_mode": "在沙箱模式下运行，使用 {0}",
        "no_sandbox_tech": "未找到沙箱技术，代码将在无沙箱保护的情况下运行。",
        "install_sandbox": (
            "请安装 firejail、nsjail、bubblewrap 或使用 systemd 以获得沙箱支持。"
        ),
        "sandbox_ignores_memory": "{0} 无法强制执行内存限制",
        "memory_not_enforced": "没有沙箱时不会强制执行内存限制",
        "program_output": "程序输出",
        "program_completed_full": "程序成功完成",
        "program_timed_out_full": "程序执行超时",
        "program_exited_with_code_full": "程序退出，返回代码 {0}",
        "program_killed_by_signal": "程序被信号 {0} 终止",
        "duration": "用时 {0:.2f} 秒",
        "supported_languages": "支持的语言",
        "error": "错误: {0}",
        "warning": "警告: {0}",
    },
}


def resolve_locale(
    preference: Optional[str] = "auto",
    env: Optional[Mapping[str, str]] = None,
) -> str:
    """``en``/``zh`` win outright; ``auto`` looks at LC_ALL then LANG."""

    choice = (preference or "auto").lower()
    if choice in MESSAGES:
        return choice
    env = os.environ if env is None else env
    for key in ("LC_ALL", "LANG"):
        value = env.get(key)
        if value:
            return "zh" if value.lower().startswith("zh") else "en"
    return "en"


def get_message(key: str, *args: object, language: str = "en") -> str:
    catalog = MESSAGES.get(language, MESSAGES["en"])
    template = catalog.get(key) or MESSAGES["en"].get(key, key)
    return template.format(*args) if args else template


__all__ = ["MESSAGES", "get_message", "resolve_locale"]

"""CLI entrypoint for the ucode runner."""

from __future__ import annotations

import argparse
import logging
import sys

from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from ucode import __version__
from ucode.configuration import (
    LOCALES,
    RunnerSettings,
    build_runner_settings,
    load_config,
)
from ucode.constants import EXIT_FAILURE, EXIT_SIGNAL_BASE, EXIT_SUCCESS
from ucode.build import resolve_flags
from ucode.discovery import detect_extension, resolve_source
from ucode.exceptions import SourceNotFoundError, UcodeError
from ucode.languages import LanguageRegistry
from ucode.logging import configure_logging, level_for, setup_file_logger
from ucode.orchestrator import Orchestrator, format_arguments
from ucode.runtime import detect_available_sandbox
from ucode.ui import ConsoleReporter, get_message, resolve_locale

LOGGER = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ucode",
        description=(
            "Detect a source file's language, build it if needed (with a "
            "compilation cache) and run it."
        ),
    )
    parser.add_argument(
        "source",
        nargs="?",
        help=(
            "Source file to run. When omitted or not a file, the most "
            "recently modified supported file in the current directory is "
            "used and this value becomes the first program argument."
        ),
    )
    parser.add_argument(
        "args",
        nargs=argparse.REMAINDER,
        help="Arguments passed to the program.",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        metavar="SECONDS",
        help="Kill the program after this many seconds (0 disables).",
    )
    parser.add_argument(
        "--memory",
        type=int,
        dest="memory_limit",
        metavar="MB",
        help="Memory limit in MB (enforced by the sandbox).",
    )
    parser.add_argument(
        "--sandbox",
        action="store_true",
        default=None,
        help="Run inside firejail/nsjail/bubblewrap/systemd-run if found.",
    )
    parser.add_argument(
        "--no-cache",
        action="store_false",
        dest="cache_enabled",
        default=None,
        help="Always compile; do not read or write the cache.",
    )
    parser.add_argument(
        "--clean-cache",
        action="store_true",
        help="Remove every cache entry and exit.",
    )
    parser.add_argument(
        "--max-cache-age",
        type=int,
        metavar="SECONDS",
        help="Discard cache entries older than this (default: 7 days).",
    )
    parser.add_argument(
        "--config",
        type=str,
        help=(
            "Path to a YAML config. If omitted, uses "
            "$XDG_CONFIG_HOME/ucode/config.yaml when present."
        ),
    )
    parser.add_argument(
        "--lang",
        dest="language",
        choices=list(LOCALES),
        help="Message language.",
    )
    parser.add_argument(
        "--separate-stderr",
        action="store_false",
        dest="merge_stderr",
        default=None,
        help="Capture stderr separately instead of merging it into stdout.",
    )
    parser.add_argument(
        "--list-languages",
        action="store_true",
        help="Print the supported languages and exit.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=None,
        help="Log progress at INFO level.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Log at DEBUG level.",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        help="Also write logs to this rotating file.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "timeout": args.timeout,
        "memory_limit": args.memory_limit,
        "sandbox": args.sandbox,
        "cache_enabled": args.cache_enabled,
        "max_cache_age": args.max_cache_age,
        "language": args.language,
        "merge_stderr": args.merge_stderr,
        "verbose": args.verbose,
        "debug": args.debug,
        "log_file": args.log_file,
    }


def _load_settings(args: argparse.Namespace) -> RunnerSettings:
    config_path = Path(args.config).expanduser() if args.config else None
    config = load_config(config_path)
    config_root = config_path.resolve().parent if config_path else None
    return build_runner_settings(
        config, cli=_cli_overrides(args), config_root=config_root
    )


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    load_dotenv()

    try:
        settings = _load_settings(args)
        registry = LanguageRegistry().with_overrides(settings.languages)
    except UcodeError as exc:
        print(get_message("error", exc), file=sys.stderr)
        return EXIT_FAILURE

    configure_logging(level_for(verbose=settings.verbose, debug=settings.debug))
    if settings.log_file is not None:
        setup_file_logger(settings.log_file)

    reporter = ConsoleReporter(
        language=resolve_locale(settings.language),
        supported=registry.extensions(),
    )
    if args.list_languages:
        reporter.list_languages(registry)
        return EXIT_SUCCESS

    orchestrator = Orchestrator(
        settings, registry=registry, on_status=reporter.on_status
    )
    if args.clean_cache:
        try:
            removed = orchestrator.clear_cache()
        except UcodeError as exc:
            reporter.error(str(exc))
            return EXIT_FAILURE
        reporter.info(reporter.msg("cache_cleaned", removed))
        return EXIT_SUCCESS

    try:
        source, program_args = resolve_source(
            args.source, args.args, registry
        )
    except SourceNotFoundError as exc:
        reporter.error(str(exc))
        return EXIT_FAILURE

    auto_selected = args.source is None or len(program_args) > len(args.args)
    reporter.info(
        reporter.msg(
            "auto_selected_file" if auto_selected else "using_file", source
        )
    )
    extension = detect_extension(source, registry)
    spec = registry.resolve(extension) if extension in registry else None
    flags = None
    if spec is not None and spec.compiled:
        flags = " ".join(resolve_flags(spec, settings.flag_overrides))
    sandbox = detect_available_sandbox() if settings.sandbox else None
    reporter.announce(
        source,
        spec,
        timeout_s=settings.timeout_s,
        memory_limit_mb=settings.memory_limit_mb,
        sandbox=sandbox.name if sandbox else None,
        flags=flags,
    )
    if program_args:
        LOGGER.info("program arguments: %s", format_arguments(program_args))

    try:
        report = orchestrator.run(source, program_args, extension=extension)
    except KeyboardInterrupt:
        reporter.error("interrupted")
        return EXIT_SIGNAL_BASE + 2
    reporter.report(report)
    return report.exit_code


def run() -> None:  # pragma: no cover - console script shim
    raise SystemExit(main())


if __name__ == "__main__":  # pragma: no cover
    run()

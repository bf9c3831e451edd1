"""Typed helpers for building per-invocation runner settings.

Values are layered as: command line > environment > YAML config > default.
The resulting ``RunnerSettings`` is frozen and passed explicitly to every
component; nothing downstream reads ``os.environ``.
"""

from __future__ import annotations

import os

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml

from ucode.constants import (
    APP_NAME,
    DEFAULT_MAX_CACHE_AGE_S,
    MEMORY_RANGE_MB,
    TIMEOUT_RANGE_S,
)
from ucode.exceptions import ConfigError
from ucode.languages import LANGUAGE_SPECS

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}

LOCALES = ("auto", "en", "zh")


@dataclass(frozen=True)
class CacheSettings:
    enabled: bool = True
    max_age_s: int = DEFAULT_MAX_CACHE_AGE_S
    directory: Optional[Path] = None


@dataclass(frozen=True)
class RunnerSettings:
    timeout_s: int = 0
    memory_limit_mb: int = 0
    sandbox: bool = False
    cache: CacheSettings = field(default_factory=CacheSettings)
    merge_stderr: bool = True
    unsandboxed_memory_cap: bool = False
    language: str = "auto"
    log_file: Optional[Path] = None
    verbose: bool = False
    debug: bool = False
    flag_overrides: Dict[str, str] = field(default_factory=dict)
    languages: Dict[str, Any] = field(default_factory=dict)

    @property
    def memory_limit_bytes(self) -> int:
        return self.memory_limit_mb * 1024 * 1024


def default_config_path(env: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if env is None else env
    base = env.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base).expanduser() / APP_NAME / "config.yaml"


def load_config(
    path: Optional[Path] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Read a YAML config; an explicit ``path`` must exist."""

    required = path is not None
    config_path = path if path is not None else default_config_path(env)
    if not config_path.exists():
        if required:
            raise ConfigError(f"config file '{config_path}' not found")
        return {}
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read config {config_path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config {config_path} must be a mapping")
    return data


def parse_bool(value: Any, *, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigError(f"{name}: expected a boolean, got {value!r}")


def parse_int(value: Any, *, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name}: expected an integer, got {value!r}")
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigError(
            f"{name}: expected an integer, got {value!r}"
        ) from None


def validate_timeout(value: int) -> int:
    low, high = TIMEOUT_RANGE_S
    if not low <= value <= high:
        raise ConfigError(
            f"timeout must be between {low} and {high} seconds, got {value}"
        )
    return value


def validate_memory(value: int) -> int:
    low, high = MEMORY_RANGE_MB
    if value != 0 and not low <= value <= high:
        raise ConfigError(
            f"memory limit must be 0 or between {low} and {high} MB, "
            f"got {value}"
        )
    return value


def _flag_env_names(languages: Mapping[str, Any]) -> Iterable[str]:
    names = {spec.flags_env for spec in LANGUAGE_SPECS.values()}
    for entry in languages.values():
        if isinstance(entry, Mapping) and entry.get("flags_env"):
            names.add(str(entry["flags_env"]))
    return sorted(name for name in names if name)


def _pick(
    cli: Mapping[str, Any],
    env: Mapping[str, str],
    cfg: Mapping[str, Any],
    *,
    cli_key: str,
    env_key: Optional[str],
    cfg_key: str,
    default: Any,
) -> tuple[Any, str]:
    if cli.get(cli_key) is not None:
        return cli[cli_key], f"--{cli_key.replace('_', '-')}"
    if env_key and env.get(env_key) not in (None, ""):
        return env[env_key], env_key
    if cfg.get(cfg_key) is not None:
        return cfg[cfg_key], f"runner.{cfg_key}"
    return default, cli_key


def build_runner_settings(
    config: Optional[Mapping[str, Any]] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    cli: Optional[Mapping[str, Any]] = None,
    config_root: Optional[Path] = None,
) -> RunnerSettings:
    """Layer CLI values, environment and config into ``RunnerSettings``.

    ``cli`` maps option names to values; ``None`` means the flag was not
    given. Relative paths in the config resolve against ``config_root``.
    """

    config = config or {}
    env = dict(os.environ if env is None else env)
    cli = cli or {}
    runner_cfg = config.get("runner") or {}
    if not isinstance(runner_cfg, Mapping):
        raise ConfigError("'runner' must be a mapping")
    cache_cfg = runner_cfg.get("cache") or {}
    if not isinstance(cache_cfg, Mapping):
        raise ConfigError("'runner.cache' must be a mapping")
    languages_cfg = config.get("languages") or {}
    if not isinstance(languages_cfg, Mapping):
        raise ConfigError("'languages' must be a mapping")
    root = config_root or Path.cwd()

    def pick(cli_key, env_key, cfg_key, default, source=runner_cfg):
        return _pick(
            cli,
            env,
            source,
            cli_key=cli_key,
            env_key=env_key,
            cfg_key=cfg_key,
            default=default,
        )

    raw, name = pick("timeout", "RUNNER_TIMEOUT", "timeout", 0)
    timeout_s = validate_timeout(parse_int(raw, name=name))
    raw, name = pick("memory_limit", "RUNNER_MEMORY_LIMIT", "memory_limit", 0)
    memory_mb = validate_memory(parse_int(raw, name=name))
    raw, name = pick("sandbox", "RUNNER_SANDBOX", "sandbox", False)
    sandbox = parse_bool(raw, name=name)

    if cli.get("cache_enabled") is not None:
        cache_enabled = bool(cli["cache_enabled"])
    elif env.get("RUNNER_DISABLE_CACHE"):
        cache_enabled = not parse_bool(
            env["RUNNER_DISABLE_CACHE"], name="RUNNER_DISABLE_CACHE"
        )
    else:
        cache_enabled = parse_bool(
            cache_cfg.get("enabled", True), name="runner.cache.enabled"
        )
    raw, name = pick(
        "max_cache_age",
        "RUNNER_MAX_CACHE_AGE",
        "max_age_s",
        DEFAULT_MAX_CACHE_AGE_S,
        source=cache_cfg,
    )
    max_age_s = parse_int(raw, name=name)
    if max_age_s <= 0:
        raise ConfigError(f"{name}: cache max age must be positive")
    raw, _ = pick("cache_dir", "RUNNER_CACHE_DIR", "dir", None, cache_cfg)
    cache_dir = None
    if raw:
        cache_dir = Path(str(raw)).expanduser()
        if not cache_dir.is_absolute():
            cache_dir = (root / cache_dir).resolve()

    raw, name = pick("merge_stderr", None, "merge_stderr", True)
    merge_stderr = parse_bool(raw, name=name)
    raw, name = pick(
        "unsandboxed_memory_cap", None, "unsandboxed_memory_cap", False
    )
    memory_cap = parse_bool(raw, name=name)

    raw, name = pick("language", "RUNNER_LANGUAGE", "language", "auto")
    language = str(raw).strip().lower()
    if language not in LOCALES:
        raise ConfigError(
            f"{name}: language must be one of {', '.join(LOCALES)}"
        )

    raw, _ = pick("log_file", None, "log_file", None)
    log_file = None
    if raw:
        log_file = Path(str(raw)).expanduser()
        if not log_file.is_absolute():
            log_file = (root / log_file).resolve()

    raw, name = pick("verbose", "RUNNER_VERBOSE", "verbose", False)
    verbose = parse_bool(raw, name=name)
    raw, name = pick("debug", "RUNNER_DEBUG", "debug", False)
    debug = parse_bool(raw, name=name)

    # empty values count as unset
    flag_overrides = {
        key: env[key]
        for key in _flag_env_names(languages_cfg)
        if env.get(key, "").strip()
    }

    return RunnerSettings(
        timeout_s=timeout_s,
        memory_limit_mb=memory_mb,
        sandbox=sandbox,
        cache=CacheSettings(
            enabled=cache_enabled, max_age_s=max_age_s, directory=cache_dir
        ),
        merge_stderr=merge_stderr,
        unsandboxed_memory_cap=memory_cap,
        language=language,
        log_file=log_file,
        verbose=verbose,
        debug=debug,
        flag_overrides=flag_overrides,
        languages=dict(languages_cfg),
    )


__all__ = [
    "CacheSettings",
    "LOCALES",
    "RunnerSettings",
    "build_runner_settings",
    "default_config_path",
    "load_config",
    "parse_bool",
    "parse_int",
    "validate_memory",
    "validate_timeout",
]

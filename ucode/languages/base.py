"""Language specification records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from ucode.exceptions import ConfigError
from ucode.types import ArtifactKind, Strategy


def normalize_extension(extension: str) -> str:
    return extension.strip().lstrip(".").lower()


def _as_tuple(value: Any, *, key: str, extension: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(value.split())
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    raise ConfigError(f"language '.{extension}': '{key}' must be a list")


@dataclass(frozen=True)
class LanguageSpec:
    """How to build and run sources with one file extension."""

    extension: str
    strategy: Strategy
    compiler: Optional[str] = None
    runner: Optional[str] = None
    flags_env: Optional[str] = None
    default_flags: str = ""
    output_args: Tuple[str, ...] = ()
    artifact_glob: Optional[str] = None
    run_args: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.extension:
            raise ConfigError("language extension must not be empty")
        if self.strategy is Strategy.DIRECT and not self.runner:
            raise ConfigError(
                f"language '.{self.extension}': direct strategy "
                "requires a runner"
            )
        if self.strategy is not Strategy.DIRECT and not self.compiler:
            raise ConfigError(
                f"language '.{self.extension}': {self.strategy.value} "
                "strategy requires a compiler"
            )
        if self.strategy is Strategy.COMPILE_TO_RUNTIME_ARTIFACT:
            if not self.runner or not self.artifact_glob:
                raise ConfigError(
                    f"language '.{self.extension}': runtime artifacts "
                    "need a runner and an artifact_glob"
                )

    @property
    def compiled(self) -> bool:
        return self.strategy is not Strategy.DIRECT

    @property
    def artifact_kind(self) -> ArtifactKind:
        if self.strategy is Strategy.COMPILE:
            return ArtifactKind.EXECUTABLE
        if self.strategy is Strategy.COMPILE_TO_RUNTIME_ARTIFACT:
            return ArtifactKind.ARCHIVE
        return ArtifactKind.SOURCE

    @classmethod
    def from_mapping(
        cls, extension: str, data: Mapping[str, Any]
    ) -> "LanguageSpec":
        ext = normalize_extension(extension)
        raw_strategy = str(data.get("strategy", "")).strip().lower()
        try:
            strategy = Strategy(raw_strategy)
        except ValueError:
            raise ConfigError(
                f"language '.{ext}': unknown strategy '{raw_strategy}'"
            ) from None
        known = {
            "strategy",
            "compiler",
            "runner",
            "flags_env",
            "default_flags",
            "output_args",
            "artifact_glob",
            "run_args",
        }
        unknown = sorted(str(key) for key in data if key not in known)
        if unknown:
            raise ConfigError(
                f"language '.{ext}': unknown keys {', '.join(unknown)}"
            )
        return cls(
            extension=ext,
            strategy=strategy,
            compiler=data.get("compiler") or None,
            runner=data.get("runner") or None,
            flags_env=data.get("flags_env") or None,
            default_flags=str(data.get("default_flags") or ""),
            output_args=_as_tuple(
                data.get("output_args"), key="output_args", extension=ext
            ),
            artifact_glob=data.get("artifact_glob") or None,
            run_args=_as_tuple(
                data.get("run_args"), key="run_args", extension=ext
            ),
        )


__all__ = ["LanguageSpec", "normalize_extension"]

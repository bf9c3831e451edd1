"""Language registry loaded from the bundled YAML table."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional

import yaml

from ucode.exceptions import ConfigError, UnsupportedLanguageError

from .base import LanguageSpec, normalize_extension

DEFAULT_TABLE_PATH = Path(__file__).with_name("languages.yaml")


def parse_language_table(data: Mapping[str, Any]) -> Dict[str, LanguageSpec]:
    """Turn a ``{ext: {...}}`` mapping into validated specs."""

    specs: Dict[str, LanguageSpec] = {}
    for ext, entry in (data or {}).items():
        if not isinstance(entry, Mapping):
            raise ConfigError(f"language '.{ext}' must be a mapping")
        spec = LanguageSpec.from_mapping(str(ext), entry)
        specs[spec.extension] = spec
    return specs


def load_language_table(
    path: Path = DEFAULT_TABLE_PATH,
) -> Dict[str, LanguageSpec]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read language table {path}: {exc}") from exc
    return parse_language_table(raw.get("languages") or {})


LANGUAGE_SPECS: Dict[str, LanguageSpec] = load_language_table()


def register_language(spec: LanguageSpec) -> None:
    """Register or override a language in the default table."""

    LANGUAGE_SPECS[spec.extension] = spec


def unregister_language(extension: str) -> None:
    LANGUAGE_SPECS.pop(normalize_extension(extension), None)


class LanguageRegistry:
    """Extension lookup over an immutable snapshot of language specs."""

    def __init__(self, specs: Optional[Iterable[LanguageSpec]] = None) -> None:
        source = LANGUAGE_SPECS.values() if specs is None else specs
        self._specs: Dict[str, LanguageSpec] = {
            spec.extension: spec for spec in source
        }

    def resolve(self, extension: str) -> LanguageSpec:
        ext = normalize_extension(extension)
        try:
            return self._specs[ext]
        except KeyError:
            raise UnsupportedLanguageError(ext, self._specs) from None

    def extensions(self) -> list[str]:
        return sorted(self._specs)

    def with_overrides(
        self, overrides: Optional[Mapping[str, Any]]
    ) -> "LanguageRegistry":
        """Return a new registry with user-configured entries applied."""

        if not overrides:
            return self
        merged = dict(self._specs)
        merged.update(parse_language_table(overrides))
        return LanguageRegistry(merged.values())

    def __contains__(self, extension: object) -> bool:
        if not isinstance(extension, str):
            return False
        return normalize_extension(extension) in self._specs

    def __iter__(self) -> Iterator[LanguageSpec]:
        return iter(self._specs[ext] for ext in self.extensions())

    def __len__(self) -> int:
        return len(self._specs)


def supported_extensions() -> list[str]:
    return sorted(LANGUAGE_SPECS)


__all__ = [
    "DEFAULT_TABLE_PATH",
    "LANGUAGE_SPECS",
    "LanguageRegistry",
    "LanguageSpec",
    "load_language_table",
    "normalize_extension",
    "parse_language_table",
    "register_language",
    "supported_extensions",
    "unregister_language",
]

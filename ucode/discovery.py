"""Locate the source file to run and work out its extension."""

from __future__ import annotations

import logging
import re

from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

from ucode.exceptions import SourceNotFoundError
from ucode.languages import LanguageRegistry, normalize_extension

LOGGER = logging.getLogger(__name__)

# interpreter basename (version suffix stripped) -> extension
SHEBANG_INTERPRETERS = {
    "python": "py",
    "node": "js",
    "nodejs": "js",
    "php": "php",
    "ruby": "rb",
    "sh": "sh",
    "bash": "sh",
    "zsh": "sh",
    "dash": "sh",
    "perl": "pl",
    "lua": "lua",
}

_VERSION_SUFFIX = re.compile(r"[\d.]+$")


def sniff_shebang(path: Path) -> Optional[str]:
    """Map a ``#!`` line to an extension, or ``None``."""

    try:
        with path.open("rb") as handle:
            first = handle.readline(256)
    except OSError:
        return None
    if not first.startswith(b"#!"):
        return None
    parts = first[2:].decode("utf-8", errors="replace").split()
    if not parts:
        return None
    interpreter = Path(parts[0]).name
    if interpreter == "env":
        names = [part for part in parts[1:] if not part.startswith("-")]
        if not names:
            return None
        interpreter = Path(names[0]).name
    base = _VERSION_SUFFIX.sub("", interpreter) or interpreter
    return SHEBANG_INTERPRETERS.get(base)


def detect_extension(path: Path, registry: LanguageRegistry) -> str:
    """Shebang wins over the suffix when it names a registered language."""

    suffix = normalize_extension(path.suffix)
    sniffed = sniff_shebang(path)
    if sniffed and sniffed in registry:
        if suffix and sniffed != suffix:
            LOGGER.info(
                "shebang of %s selects .%s over .%s", path, sniffed, suffix
            )
        return sniffed
    return suffix


def find_latest_source(
    directory: Path, extensions: Iterable[str]
) -> Optional[Path]:
    """Most recently modified supported file directly inside ``directory``."""

    wanted = {normalize_extension(ext) for ext in extensions}
    latest: Optional[Tuple[float, Path]] = None
    for entry in directory.iterdir():
        if entry.name.startswith("."):
            continue
        if normalize_extension(entry.suffix) not in wanted:
            continue
        try:
            if not entry.is_file():
                continue
            mtime = entry.stat().st_mtime
        except OSError:
            continue
        if latest is None or mtime > latest[0]:
            latest = (mtime, entry)
    return latest[1] if latest else None


def resolve_source(
    candidate: Optional[str],
    args: Sequence[str],
    registry: LanguageRegistry,
    *,
    directory: Optional[Path] = None,
) -> Tuple[Path, list[str]]:
    """Return ``(source, program_args)`` for the command line.

    When ``candidate`` is not an existing file it is treated as the first
    program argument and the latest source in ``directory`` is used.
    """

    directory = directory or Path.cwd()
    if candidate:
        path = Path(candidate).expanduser()
        if path.is_file():
            LOGGER.info("using specified file: %s", path)
            return path, list(args)
        if path.suffix and normalize_extension(path.suffix) in registry:
            raise SourceNotFoundError(
                f"specified file does not exist: {candidate}"
            )
        args = [candidate, *args]
    found = find_latest_source(directory, registry.extensions())
    if found is None:
        listing = " ".join(f".{ext}" for ext in registry.extensions())
        raise SourceNotFoundError(
            f"no supported source files in {directory} (supported: {listing})"
        )
    LOGGER.info("auto-selected file: %s", found)
    return found, list(args)


__all__ = [
    "SHEBANG_INTERPRETERS",
    "detect_extension",
    "find_latest_source",
    "resolve_source",
    "sniff_shebang",
]

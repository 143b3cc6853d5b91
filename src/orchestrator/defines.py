"""Build-time define merging.

Defines reach the app under test as ``--dart-define`` values. Sources are
layered so that later ones strictly win on key collisions::

    define files (--define-from-file)  <  .uirun.env  <  --define  <  internal

which lets CI force a value without editing checked-in files.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Protocol, Sequence

from contracts.errors import ConfigurationError
from contracts.schemas import validate

ENV_FILENAME = ".uirun.env"


class DefineFileReader(Protocol):
    def read_define_files(self, paths: Sequence[str]) -> Dict[str, str]:
        """Return the combined defines of *paths*, later files winning."""


def merge(base: Mapping[str, str], overrides: Mapping[str, str]) -> Dict[str, str]:
    """Return a copy of *base* with every key of *overrides* set or replaced."""

    merged = dict(base)
    for key, value in overrides.items():
        merged[key] = value
    return merged


def merge_from_sources(
    file_paths: Sequence[str],
    cli_defines: Mapping[str, str],
    reader: DefineFileReader,
) -> Dict[str, str]:
    """Merge defines read from *file_paths* with *cli_defines* on top."""

    return merge(reader.read_define_files(file_paths), cli_defines)


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def parse_define(item: str) -> tuple[str, str]:
    key, sep, value = item.partition("=")
    key = key.strip()
    if not sep or not key:
        raise ConfigurationError(f"Define '{item}' must have the form KEY=VALUE")
    return key, value


class DefinesReader:
    """Reads defines from the project directory and the command line."""

    def __init__(self, project_directory: str | Path, logger: logging.Logger | None = None) -> None:
        self._project_dir = Path(project_directory)
        self._logger = logger or logging.getLogger(__name__)

    def from_file(self) -> Dict[str, str]:
        """Read ``KEY=VALUE`` lines from the project's ``.uirun.env``."""

        path = self._project_dir / ENV_FILENAME
        if not path.is_file():
            return {}
        defines: Dict[str, str] = {}
        for lineno, raw in enumerate(path.read_text("utf-8").splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            try:
                key, value = parse_define(line)
            except ConfigurationError as exc:
                raise ConfigurationError(f"{path}:{lineno}: {exc.message}") from exc
            defines[key] = value
        self._logger.debug("Read %d define(s) from %s", len(defines), path)
        return defines

    def from_cli(self, args: Iterable[str]) -> Dict[str, str]:
        defines: Dict[str, str] = {}
        for item in args:
            key, value = parse_define(item)
            defines[key] = value
        return defines

    def read_define_files(self, paths: Sequence[str]) -> Dict[str, str]:
        combined: Dict[str, str] = {}
        for raw_path in paths:
            path = Path(raw_path)
            if not path.is_absolute():
                path = self._project_dir / path
            try:
                document = json.loads(path.read_text("utf-8"))
            except FileNotFoundError as exc:
                raise ConfigurationError(f"Define file {raw_path} does not exist") from exc
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"Define file {raw_path} is not valid JSON: {exc}") from exc
            validate(document, "uirun:define_file", source=f"Define file {raw_path}")
            for key, value in document.items():
                combined[key] = _stringify(value)
        return combined


__all__ = [
    "ENV_FILENAME",
    "DefineFileReader",
    "DefinesReader",
    "merge",
    "merge_from_sources",
    "parse_define",
]

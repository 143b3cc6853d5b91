"""Utility helpers for loading the host project's ``uirun.toml``."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    import tomli as tomllib  # type: ignore[import-untyped]

from contracts.errors import ConfigurationError

CONFIG_FILENAME = "uirun.toml"
DEFAULT_TEST_DIRECTORY = "integration_test"
DEFAULT_TEST_FILE_SUFFIX = "_test.dart"


@dataclass(frozen=True)
class AndroidConfig:
    package_name: str | None = None
    app_name: str | None = None
    flavor: str | None = None


@dataclass(frozen=True)
class IOSConfig:
    bundle_id: str | None = None
    app_name: str | None = None
    flavor: str | None = None


@dataclass(frozen=True)
class MacOSConfig:
    bundle_id: str | None = None
    flavor: str | None = None


@dataclass(frozen=True)
class ProjectConfig:
    """Resolved settings of the project whose tests are run."""

    name: str
    test_directory: str
    test_file_suffix: str
    android: AndroidConfig
    ios: IOSConfig
    macos: MacOSConfig


def config_path(project_directory: str | Path) -> Path:
    return Path(project_directory).resolve() / CONFIG_FILENAME


@lru_cache(maxsize=8)
def _load_raw(path: Path) -> Dict[str, Any]:
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigurationError(
            f"Configuration file '{CONFIG_FILENAME}' was not found in {path.parent}"
        ) from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"{path} is not valid TOML: {exc}") from exc


def get_config(project_directory: str | Path) -> Dict[str, Any]:
    """Load and cache the raw project configuration as a dictionary."""

    return _load_raw(config_path(project_directory))


def reload() -> None:
    """Clear the cached configuration files."""

    _load_raw.cache_clear()


def get_section(project_directory: str | Path, path: str, default: Any = None) -> Any:
    """Retrieve a nested configuration value using dotted notation."""

    data: Any = get_config(project_directory)
    for part in path.split("."):
        if isinstance(data, dict) and part in data:
            data = data[part]
        else:
            if default is not None:
                return default
            raise KeyError(f"Configuration path '{path}' not found")
    return data


def _optional_str(block: Mapping[str, Any], key: str, section: str) -> str | None:
    value = block.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"'{section}.{key}' must be a non-empty string")
    return value


def _table(raw: Mapping[str, Any], section: str) -> Mapping[str, Any]:
    block = raw.get(section, {})
    if not isinstance(block, dict):
        raise ConfigurationError(f"'{section}' must be a table")
    return block


def load_project_config(project_directory: str | Path) -> ProjectConfig:
    """Parse ``uirun.toml`` into a :class:`ProjectConfig`.

    ``project.name`` is required; everything else falls back to defaults.
    """

    raw = get_config(project_directory)
    project = _table(raw, "project")
    name = _optional_str(project, "name", "project")
    if name is None:
        raise ConfigurationError(f"'project.name' is missing from {CONFIG_FILENAME}")

    android = _table(raw, "android")
    ios = _table(raw, "ios")
    macos = _table(raw, "macos")

    return ProjectConfig(
        name=name,
        test_directory=_optional_str(project, "test_directory", "project") or DEFAULT_TEST_DIRECTORY,
        test_file_suffix=_optional_str(project, "test_file_suffix", "project") or DEFAULT_TEST_FILE_SUFFIX,
        android=AndroidConfig(
            package_name=_optional_str(android, "package_name", "android"),
            app_name=_optional_str(android, "app_name", "android"),
            flavor=_optional_str(android, "flavor", "android"),
        ),
        ios=IOSConfig(
            bundle_id=_optional_str(ios, "bundle_id", "ios"),
            app_name=_optional_str(ios, "app_name", "ios"),
            flavor=_optional_str(ios, "flavor", "ios"),
        ),
        macos=MacOSConfig(
            bundle_id=_optional_str(macos, "bundle_id", "macos"),
            flavor=_optional_str(macos, "flavor", "macos"),
        ),
    )


__all__ = [
    "CONFIG_FILENAME",
    "AndroidConfig",
    "IOSConfig",
    "MacOSConfig",
    "ProjectConfig",
    "config_path",
    "get_config",
    "get_section",
    "load_project_config",
    "reload",
]

"""Tool-wide feature switches from ``config/features.toml``.

Environment variables always win over the file, so CI can flip a switch
without touching the checkout.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    import tomli as tomllib  # type: ignore[import-untyped]

from contracts.errors import ConfigurationError

__all__ = ["features_path", "get_analytics_feature", "get_feature", "is_analytics_enabled", "reload"]

FEATURES_FILE_ENV = "UIRUN_FEATURES_FILE"
_BUNDLED_FEATURES = Path(__file__).resolve().parents[1] / "config" / "features.toml"
_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


def features_path(env: Mapping[str, str] | None = None) -> Path:
    override = (env or {}).get(FEATURES_FILE_ENV)
    return Path(override) if override else _BUNDLED_FEATURES


@lru_cache(maxsize=4)
def _read_features(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"{path} is not valid TOML: {exc}") from exc


def reload() -> None:
    """Forget every feature file read so far."""

    _read_features.cache_clear()


def get_feature(name: str, env: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Return the ``[name]`` table, or an empty dict when it is absent."""

    block = _read_features(features_path(env)).get(name)
    return dict(block) if isinstance(block, dict) else {}


def get_analytics_feature(env: Mapping[str, str] | None = None) -> dict[str, Any]:
    return get_feature("analytics", env)


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUTHY:
            return True
        if word in _FALSY:
            return False
    return None


def is_analytics_enabled(env: Mapping[str, str] | None = None) -> bool:
    """Return ``True`` when usage events may be recorded.

    Explicit ``UIRUN_ANALYTICS_ENABLED``/``UIRUN_ANALYTICS`` values win; a
    truthy ``CI`` variable otherwise turns analytics off.
    """

    env = env or {}
    for key in ("UIRUN_ANALYTICS_ENABLED", "UIRUN_ANALYTICS"):
        override = _coerce_bool(env.get(key))
        if override is not None:
            return override
    if _coerce_bool(env.get("CI")):
        return False
    return _coerce_bool(get_analytics_feature(env).get("enabled", True)) is not False

"""JSON schemas for files the runner reads from the host project."""

from __future__ import annotations

import copy
from typing import Any, Dict

import jsonschema

from .errors import ConfigurationError

PACKAGE_CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "uirun:package_config",
    "type": "object",
    "required": ["packages"],
    "properties": {
        "packages": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name"],
                "properties": {"name": {"type": "string", "minLength": 1}},
            },
        },
    },
}

DEFINE_FILE_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "uirun:define_file",
    "type": "object",
    "additionalProperties": {"type": ["string", "number", "boolean"]},
}

_compiled_cache: Dict[str, Any] = {}


def get_schema(schema_id: str) -> Dict[str, Any]:
    """Return a copy of the registered schema with ``$id`` *schema_id*."""

    for schema in (PACKAGE_CONFIG_SCHEMA, DEFINE_FILE_SCHEMA):
        if schema["$id"] == schema_id:
            return copy.deepcopy(schema)
    raise KeyError(f"Unknown schema: {schema_id}")


def _compile(schema_dict: Dict[str, Any]) -> Any:
    cache_key = schema_dict["$id"]
    if cache_key in _compiled_cache:
        return _compiled_cache[cache_key]

    validator_cls = jsonschema.validators.validator_for(schema_dict)
    validator_cls.check_schema(schema_dict)
    validator = validator_cls(schema_dict)
    _compiled_cache[cache_key] = validator
    return validator


def validate(document: Any, schema_id: str, *, source: str) -> None:
    """Validate *document* against *schema_id*.

    The first violation (ordered by JSON path) is reported as a
    :class:`ConfigurationError` naming *source*.
    """

    validator = _compile(get_schema(schema_id))
    errors = sorted(validator.iter_errors(document), key=lambda err: list(err.absolute_path))
    if errors:
        first = errors[0]
        location = "/".join(str(part) for part in first.absolute_path) or "<root>"
        raise ConfigurationError(f"{source} is malformed at {location}: {first.message}")


__all__ = ["DEFINE_FILE_SCHEMA", "PACKAGE_CONFIG_SCHEMA", "get_schema", "validate"]

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

import jsonschema

from ..core.errors import ValidationError
from .catalog import schema_path_for


@lru_cache(maxsize=None)
def _load_schema(schema_name: str) -> dict[str, Any]:
    return json.loads(schema_path_for(schema_name).read_text(encoding="utf-8"))


def validate(schema_name: str, payload: Any) -> None:
    schema = _load_schema(schema_name)
    try:
        jsonschema.validate(payload, schema)
    except jsonschema.ValidationError as exc:
        pointer = "/".join(str(p) for p in exc.absolute_path)
        loc = pointer or "<root>"
        raise ValidationError(f"schema validation failed for {schema_name} at {loc}: {exc.message}") from exc


def validate_self(schema_name: str, payload: Any) -> Any:
    validate(schema_name, payload)
    return payload

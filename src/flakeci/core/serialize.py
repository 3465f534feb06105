"""JSON rendering for CLI payloads and log lines."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return str(value)


def dumps_json(payload: Any, pretty: bool = False) -> str:
    """Sorted-key JSON; values JSON cannot represent are written as strings."""
    return json.dumps(payload, indent=(2 if pretty else None), sort_keys=True, default=_encode)


__all__ = ["dumps_json"]

from __future__ import annotations

from .validate import validate, validate_self

__all__ = ["validate", "validate_self"]

from __future__ import annotations

from dataclasses import dataclass

from .exit_codes import ERR_CANCELLED, ERR_CONFIG, ERR_INTERNAL, ERR_STRUCTURAL, ERR_USAGE, ERR_VALIDATION


@dataclass
class FlakeCIError(Exception):
    message: str
    code: int = ERR_INTERNAL
    kind: str = "generic_error"

    def __str__(self) -> str:
        return self.message


class ConfigError(FlakeCIError):
    def __init__(self, message: str) -> None:
        super().__init__(message, ERR_CONFIG, "config_error")


class ValidationError(FlakeCIError):
    def __init__(self, message: str) -> None:
        super().__init__(message, ERR_VALIDATION, "validation_error")


class LocatorError(FlakeCIError):
    """Raised when a flake URL cannot be parsed or joined with a directory."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ERR_STRUCTURAL, "locator_error")


class SubflakeError(FlakeCIError):
    """Structural failure of one subflake; aborts the whole run."""

    def __init__(self, subflake: str, cause: str) -> None:
        super().__init__(f"failed to run subflake {subflake}: {cause}", ERR_STRUCTURAL, "subflake_error")
        self.subflake = subflake


class RemoteHostError(FlakeCIError):
    def __init__(self, message: str = "remote host not specified") -> None:
        super().__init__(message, ERR_USAGE, "remote_host_error")


class RunCancelledError(FlakeCIError):
    def __init__(self, message: str = "ci run cancelled") -> None:
        super().__init__(message, ERR_CANCELLED, "cancelled")


__all__ = [
    "ConfigError",
    "FlakeCIError",
    "LocatorError",
    "RemoteHostError",
    "RunCancelledError",
    "SubflakeError",
    "ValidationError",
]

"""Local CI engine: run subflake steps and compute build matrices."""

from __future__ import annotations

from .config import load_config, parse_config
from .locator import FlakeURL, resolve_locator
from .matrix import GitHubMatrix, MatrixRow, generate_matrix
from .model import (
    BuildStep,
    CIConfig,
    CustomKind,
    CustomStep,
    FlakeCheckStep,
    LockfileStep,
    RunOptions,
    StepOutcome,
    StepsConfig,
    SubflakeConfig,
    SubflakeResult,
)
from .orchestrator import run

__all__ = [
    "BuildStep",
    "CIConfig",
    "CustomKind",
    "CustomStep",
    "FlakeCheckStep",
    "FlakeURL",
    "GitHubMatrix",
    "LockfileStep",
    "MatrixRow",
    "RunOptions",
    "StepOutcome",
    "StepsConfig",
    "SubflakeConfig",
    "SubflakeResult",
    "generate_matrix",
    "load_config",
    "parse_config",
    "resolve_locator",
    "run",
]

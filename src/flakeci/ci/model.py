"""Descriptors for subflakes and their steps, plus the result records of a run.

Step kinds form a closed set: ``BuildStep``, ``LockfileStep``, ``FlakeCheckStep``
and ``CustomStep``. Everything here is immutable once constructed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping, Sequence, Union

BUILD_KEY = "build"
LOCKFILE_KEY = "lockfile"
FLAKE_CHECK_KEY = "flakeCheck"
CUSTOM_PREFIX = "custom:"


def _matches_systems(whitelist: Sequence[str], systems: Sequence[str]) -> bool:
    if not whitelist:
        return True
    return any(system in whitelist for system in systems)


@dataclass(frozen=True)
class BuildStep:
    enable: bool = True
    impure: bool = False

    @property
    def key(self) -> str:
        return BUILD_KEY


@dataclass(frozen=True)
class LockfileStep:
    enable: bool = True

    @property
    def key(self) -> str:
        return LOCKFILE_KEY


@dataclass(frozen=True)
class FlakeCheckStep:
    enable: bool = True

    @property
    def key(self) -> str:
        return FLAKE_CHECK_KEY


class CustomKind(str, Enum):
    DEVSHELL = "devshell"
    APP = "app"


@dataclass(frozen=True)
class CustomStep:
    """A user-defined command.

    ``devshell`` steps run ``command`` as given, or inside ``nix develop``
    when ``target`` names a dev shell. ``app`` steps run the flake app
    ``target`` (``default`` when unset) with ``args``.
    """

    name: str
    command: tuple[str, ...] = ()
    kind: CustomKind = CustomKind.DEVSHELL
    target: str | None = None
    args: tuple[str, ...] = ()
    systems: tuple[str, ...] = ()
    enable: bool = True

    @property
    def key(self) -> str:
        return f"{CUSTOM_PREFIX}{self.name}"

    def can_run_on(self, systems: Sequence[str]) -> bool:
        return _matches_systems(self.systems, systems)


Step = Union[BuildStep, LockfileStep, FlakeCheckStep, CustomStep]


@dataclass(frozen=True)
class StepsConfig:
    build: BuildStep = field(default_factory=BuildStep)
    lockfile: LockfileStep = field(default_factory=LockfileStep)
    flake_check: FlakeCheckStep = field(default_factory=FlakeCheckStep)
    custom: tuple[CustomStep, ...] = ()

    def enabled_steps(self, systems: Sequence[str] = ()) -> list[Step]:
        """Enabled steps in execution order: build, lockfile, flakeCheck, custom.

        Custom steps keep their declaration order and are dropped when their
        own system whitelist excludes every requested system.
        """
        steps: list[Step] = []
        if self.build.enable:
            steps.append(self.build)
        if self.lockfile.enable:
            steps.append(self.lockfile)
        if self.flake_check.enable:
            steps.append(self.flake_check)
        steps.extend(step for step in self.custom if step.enable and step.can_run_on(systems))
        return steps

    def enabled_step_names(self, systems: Sequence[str] = ()) -> list[str]:
        return [step.key for step in self.enabled_steps(systems)]


@dataclass(frozen=True)
class SubflakeConfig:
    dir: str = "."
    skip: bool = False
    systems: tuple[str, ...] = ()
    override_inputs: Mapping[str, str] = field(default_factory=dict)
    steps: StepsConfig = field(default_factory=StepsConfig)

    def can_run_on(self, systems: Sequence[str]) -> bool:
        return _matches_systems(self.systems, systems)


@dataclass(frozen=True)
class CIConfig:
    subflakes: Mapping[str, SubflakeConfig] = field(default_factory=dict)

    def selected(self, systems: Sequence[str]) -> Iterator[tuple[str, SubflakeConfig]]:
        """Subflakes that are neither skipped nor excluded by their system whitelist."""
        for name, subflake in self.subflakes.items():
            if subflake.skip or not subflake.can_run_on(systems):
                continue
            yield name, subflake


def default_config() -> CIConfig:
    return CIConfig(subflakes={".": SubflakeConfig()})


@dataclass(frozen=True)
class RunOptions:
    systems: tuple[str, ...] = ()
    parallel: bool = False
    max_concurrency: int = 0
    remote_host: str | None = None
    emit_grouped_output: bool = False


@dataclass(frozen=True)
class StepOutcome:
    name: str
    success: bool
    output: str = ""
    error: str = ""
    duration: float = 0.0

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "success": self.success, "duration": self.duration}
        if self.error:
            payload["error"] = self.error
        if self.output:
            payload["output"] = self.output
        return payload

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "StepOutcome":
        return cls(
            name=str(payload["name"]),
            success=bool(payload["success"]),
            output=str(payload.get("output", "")),
            error=str(payload.get("error", "")),
            duration=float(payload.get("duration", 0.0)),
        )


@dataclass(frozen=True)
class SubflakeResult:
    subflake: str
    steps: Mapping[str, StepOutcome]
    duration: float
    success: bool

    @classmethod
    def from_outcomes(cls, subflake: str, steps: Mapping[str, StepOutcome], duration: float) -> "SubflakeResult":
        return cls(
            subflake=subflake,
            steps=dict(steps),
            duration=duration,
            success=all(outcome.success for outcome in steps.values()),
        )

    @property
    def failed_steps(self) -> list[StepOutcome]:
        return [outcome for outcome in self.steps.values() if not outcome.success]

    def to_json(self) -> dict[str, Any]:
        return {
            "subflake": self.subflake,
            "steps": {key: outcome.to_json() for key, outcome in self.steps.items()},
            "duration": self.duration,
            "success": self.success,
        }

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "SubflakeResult":
        steps = {str(key): StepOutcome.from_json(raw) for key, raw in dict(payload.get("steps") or {}).items()}
        return cls(
            subflake=str(payload["subflake"]),
            steps=steps,
            duration=float(payload.get("duration", 0.0)),
            success=bool(payload["success"]),
        )


__all__ = [
    "BUILD_KEY",
    "BuildStep",
    "CIConfig",
    "CUSTOM_PREFIX",
    "CustomKind",
    "CustomStep",
    "FLAKE_CHECK_KEY",
    "FlakeCheckStep",
    "LOCKFILE_KEY",
    "LockfileStep",
    "RunOptions",
    "Step",
    "StepOutcome",
    "StepsConfig",
    "SubflakeConfig",
    "SubflakeResult",
    "default_config",
]

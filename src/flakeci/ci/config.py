from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import yaml

from ..contracts.ids import CONFIG
from ..contracts.validate import validate
from ..core.errors import ConfigError, ValidationError
from .model import (
    BuildStep,
    CIConfig,
    CustomKind,
    CustomStep,
    FlakeCheckStep,
    LockfileStep,
    StepsConfig,
    SubflakeConfig,
    default_config,
)

DEFAULT_CONFIG_FILE = "om.yaml"


def _strings(values: Any) -> tuple[str, ...]:
    return tuple(str(value) for value in (values or ()))


def _custom_step(name: str, raw: Mapping[str, Any]) -> CustomStep:
    return CustomStep(
        name=name,
        command=_strings(raw.get("command")),
        kind=CustomKind(raw.get("type", CustomKind.DEVSHELL.value)),
        target=(raw.get("target") or None),
        args=_strings(raw.get("args")),
        systems=_strings(raw.get("systems")),
        enable=bool(raw.get("enable", True)),
    )


def _custom_steps(raw: Any) -> tuple[CustomStep, ...]:
    if not raw:
        return ()
    if isinstance(raw, Mapping):
        return tuple(_custom_step(str(name), raw_step) for name, raw_step in raw.items())
    return tuple(_custom_step(str(raw_step["name"]), raw_step) for raw_step in raw)


def _steps(raw: Mapping[str, Any]) -> StepsConfig:
    build = raw.get("build") or {}
    lockfile = raw.get("lockfile") or {}
    flake_check = raw.get("flakeCheck", raw.get("flake-check")) or {}
    return StepsConfig(
        build=BuildStep(enable=bool(build.get("enable", True)), impure=bool(build.get("impure", False))),
        lockfile=LockfileStep(enable=bool(lockfile.get("enable", True))),
        flake_check=FlakeCheckStep(enable=bool(flake_check.get("enable", True))),
        custom=_custom_steps(raw.get("custom")),
    )


def _subflake(raw: Mapping[str, Any]) -> SubflakeConfig:
    return SubflakeConfig(
        dir=str(raw.get("dir") or "."),
        skip=bool(raw.get("skip", False)),
        systems=_strings(raw.get("systems")),
        override_inputs={str(k): str(v) for k, v in dict(raw.get("overrideInputs") or {}).items()},
        steps=_steps(raw.get("steps") or {}),
    )


def parse_config(payload: Mapping[str, Any] | None) -> CIConfig:
    """Build a ``CIConfig`` from the ``ci`` section of the configuration file."""
    ci = dict(payload or {})
    try:
        validate(CONFIG, ci)
    except ValidationError as exc:
        raise ConfigError(f"invalid ci configuration: {exc}") from exc
    subflakes = {str(name): _subflake(raw or {}) for name, raw in dict(ci.get("default") or {}).items()}
    return CIConfig(subflakes=subflakes)


def load_config(path: str | Path) -> CIConfig:
    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"failed to read config file {config_path}: {exc}") from exc
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse config YAML {config_path}: {exc}") from exc
    if document is None:
        document = {}
    if not isinstance(document, Mapping):
        raise ConfigError(f"config file {config_path} must contain a mapping at the top level")
    return parse_config(document.get("ci"))


def load_config_or_default(path: str | Path, *, explicit: bool) -> CIConfig:
    """Load ``path``; fall back to the built-in config when the default file is absent."""
    if not explicit and not Path(path).exists():
        return default_config()
    return load_config(path)


__all__ = ["DEFAULT_CONFIG_FILE", "load_config", "load_config_or_default", "parse_config"]

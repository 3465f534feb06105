from __future__ import annotations

import platform
from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping, Sequence

from ..core.process import run_command
from .locator import FlakeURL

if TYPE_CHECKING:
    from ..core.cancel import CancelToken
    from ..core.context import RunContext

NIX = "nix"

_MACHINE_ALIASES = {"amd64": "x86_64", "x64": "x86_64", "arm64": "aarch64"}


@dataclass
class NixCommandError(Exception):
    command_args: tuple[str, ...]
    exit_code: int
    stderr: str
    stdout: str = ""

    def __str__(self) -> str:
        return f"nix command failed: {NIX} {' '.join(self.command_args)} (exit {self.exit_code}): {self.stderr.strip()}"


def current_system() -> str:
    machine = platform.machine().lower()
    machine = _MACHINE_ALIASES.get(machine, machine)
    return f"{machine}-{platform.system().lower()}"


def override_input_args(override_inputs: Mapping[str, str] | None) -> list[str]:
    args: list[str] = []
    for name in sorted(override_inputs or {}):
        args.extend(["--override-input", name, str(override_inputs[name])])
    return args


def build_args(flake: FlakeURL, impure: bool = False, override_inputs: Mapping[str, str] | None = None) -> list[str]:
    args = ["build", str(flake), "--no-link", "--print-out-paths"]
    if impure:
        args.append("--impure")
    return [*args, *override_input_args(override_inputs)]


def lock_check_args(flake: FlakeURL, override_inputs: Mapping[str, str] | None = None) -> list[str]:
    return ["flake", "lock", "--no-update-lock-file", str(flake), *override_input_args(override_inputs)]


def flake_check_args(flake: FlakeURL, override_inputs: Mapping[str, str] | None = None) -> list[str]:
    return ["flake", "check", str(flake), *override_input_args(override_inputs)]


def develop_args(flake: FlakeURL, shell: str, command: Sequence[str]) -> list[str]:
    return ["develop", str(flake.with_attr(shell)), "-c", *command]


def app_args(flake: FlakeURL, app: str | None, args: Sequence[str]) -> list[str]:
    return ["run", str(flake.with_attr(app or "default")), "--", *args]


class NixCmd:
    """Runs ``nix`` subcommands, returning stripped stdout or raising ``NixCommandError``."""

    def __init__(
        self,
        extra_args: Sequence[str] = (),
        *,
        cancel: CancelToken | None = None,
        ctx: RunContext | None = None,
    ) -> None:
        self.extra_args = tuple(extra_args)
        self.cancel = cancel
        self.ctx = ctx

    def run(self, args: Sequence[str]) -> str:
        all_args = (*self.extra_args, *args)
        result = run_command([NIX, *all_args], cancel=self.cancel, ctx=self.ctx)
        if not result.ok:
            raise NixCommandError(all_args, result.code, result.stderr, result.stdout)
        return result.stdout.strip()

    def build_all(self, flake: FlakeURL, impure: bool = False, override_inputs: Mapping[str, str] | None = None) -> str:
        return self.run(build_args(flake, impure, override_inputs))

    def lock_check(self, flake: FlakeURL, override_inputs: Mapping[str, str] | None = None) -> str:
        return self.run(lock_check_args(flake, override_inputs))

    def flake_check(self, flake: FlakeURL, override_inputs: Mapping[str, str] | None = None) -> str:
        return self.run(flake_check_args(flake, override_inputs))


__all__ = [
    "NIX",
    "NixCmd",
    "NixCommandError",
    "app_args",
    "build_args",
    "current_system",
    "develop_args",
    "flake_check_args",
    "lock_check_args",
    "override_input_args",
]

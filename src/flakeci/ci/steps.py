from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable, Mapping, Protocol, Sequence

from ..core.process import CODE_NOT_FOUND, CommandResult, run_command
from .locator import FlakeURL
from .model import BuildStep, CustomKind, CustomStep, FlakeCheckStep, LockfileStep, Step, StepOutcome
from .nix import NIX, NixCmd, NixCommandError, app_args, develop_args

if TYPE_CHECKING:
    from ..core.cancel import CancelToken
    from ..core.context import RunContext

LOCKFILE_OUT_OF_DATE = "flake.lock is out of date"
NO_COMMAND = "custom step has no command"

Spawner = Callable[[Sequence[str]], CommandResult]


class StepRunner(Protocol):
    def run_step(
        self,
        flake: FlakeURL,
        step: Step,
        *,
        override_inputs: Mapping[str, str] | None = None,
    ) -> StepOutcome:
        """Execute one step and report it; step failures never raise."""


def custom_structured_args(flake: FlakeURL, step: CustomStep) -> list[str] | None:
    """nix arguments for custom steps that go through the structured nix path.

    Returns ``None`` for a devshell command that should be spawned as-is.
    """
    if step.kind is CustomKind.APP:
        return app_args(flake, step.target, step.args)
    if step.target:
        return develop_args(flake, step.target, step.command)
    if step.command and step.command[0] == NIX:
        return list(step.command[1:])
    return None


def exit_status_text(code: int) -> str:
    return f"exit status {code}"


class LocalStepRunner:
    """Runs steps as local processes through ``nix`` or a direct spawn."""

    def __init__(
        self,
        nix: NixCmd | None = None,
        *,
        spawn: Spawner | None = None,
        cancel: CancelToken | None = None,
        ctx: RunContext | None = None,
    ) -> None:
        self.nix = nix or NixCmd(cancel=cancel, ctx=ctx)
        self.cancel = cancel
        self.ctx = ctx
        self._spawn = spawn or self._spawn_process

    def _spawn_process(self, argv: Sequence[str]) -> CommandResult:
        return run_command(argv, merge_stderr=True, cancel=self.cancel, ctx=self.ctx)

    def run_step(
        self,
        flake: FlakeURL,
        step: Step,
        *,
        override_inputs: Mapping[str, str] | None = None,
    ) -> StepOutcome:
        started = time.perf_counter()
        output, error = "", ""
        if isinstance(step, BuildStep):
            try:
                output = self.nix.build_all(flake, step.impure, override_inputs)
            except NixCommandError as exc:
                output, error = exc.stdout.strip(), str(exc)
        elif isinstance(step, LockfileStep):
            try:
                output = self.nix.lock_check(flake, override_inputs)
            except NixCommandError as exc:
                output, error = exc.stdout.strip(), LOCKFILE_OUT_OF_DATE
        elif isinstance(step, FlakeCheckStep):
            try:
                output = self.nix.flake_check(flake, override_inputs)
            except NixCommandError as exc:
                output, error = exc.stdout.strip(), str(exc)
        elif isinstance(step, CustomStep):
            output, error = self._run_custom(flake, step)
        else:
            raise TypeError(f"unknown step kind: {type(step).__name__}")
        return StepOutcome(
            name=step.key,
            success=not error,
            output=output,
            error=error,
            duration=time.perf_counter() - started,
        )

    def _run_custom(self, flake: FlakeURL, step: CustomStep) -> tuple[str, str]:
        if step.kind is CustomKind.DEVSHELL and not step.command:
            return "", NO_COMMAND
        structured = custom_structured_args(flake, step)
        if structured is not None:
            try:
                return self.nix.run(structured), ""
            except NixCommandError as exc:
                return exc.stdout.strip(), str(exc)
        result = self._spawn(step.command)
        if result.ok:
            return result.combined_output, ""
        detail = exit_status_text(result.code)
        if result.code == CODE_NOT_FOUND and result.stderr:
            detail = result.stderr
        return result.combined_output, detail


__all__ = [
    "LOCKFILE_OUT_OF_DATE",
    "LocalStepRunner",
    "NO_COMMAND",
    "StepRunner",
    "custom_structured_args",
    "exit_status_text",
]

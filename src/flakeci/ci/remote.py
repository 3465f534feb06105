"""Step execution on a remote host over ssh.

Every argument vector is rendered into one POSIX-shell command string with
each argument quoted on its own, so arguments containing spaces, quotes or
``=`` reach the remote side with their boundaries intact.
"""

from __future__ import annotations

import shlex
import time
from typing import TYPE_CHECKING, Mapping, Protocol, Sequence

from ..core.errors import RemoteHostError
from ..core.process import CommandResult, run_command
from .locator import FlakeURL
from .model import BuildStep, CustomKind, CustomStep, FlakeCheckStep, LockfileStep, Step, StepOutcome
from .nix import NIX, build_args, flake_check_args, lock_check_args
from .steps import LOCKFILE_OUT_OF_DATE, NO_COMMAND, custom_structured_args, exit_status_text

if TYPE_CHECKING:
    from ..core.cancel import CancelToken
    from ..core.context import RunContext

SSH = "ssh"
SSH_TRANSPORT_EXIT = 255


def quote_command(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(part)) for part in argv)


def ssh_argv(host: str, argv: Sequence[str], ssh_options: Sequence[str] = ()) -> list[str]:
    return [SSH, *ssh_options, host, quote_command(argv)]


class RemoteTransport(Protocol):
    def exec(self, host: str, argv: Sequence[str]) -> CommandResult:
        ...


class SshTransport:
    def __init__(
        self,
        ssh_options: Sequence[str] = ("-o", "BatchMode=yes"),
        *,
        cancel: CancelToken | None = None,
        ctx: RunContext | None = None,
    ) -> None:
        self.ssh_options = tuple(ssh_options)
        self.cancel = cancel
        self.ctx = ctx

    def exec(self, host: str, argv: Sequence[str]) -> CommandResult:
        return run_command(ssh_argv(host, argv, self.ssh_options), merge_stderr=True, cancel=self.cancel, ctx=self.ctx)


def execute_remote_command(host: str, argv: Sequence[str], transport: RemoteTransport | None = None) -> CommandResult:
    if not (host or "").strip():
        raise RemoteHostError()
    return (transport or SshTransport()).exec(host, argv)


def _remote_failure(result: CommandResult) -> str:
    if result.code == SSH_TRANSPORT_EXIT:
        return f"ssh transport error ({exit_status_text(result.code)})"
    return exit_status_text(result.code)


class RemoteStepRunner:
    """Runs the same four step kinds as ``LocalStepRunner`` on ``host``."""

    def __init__(
        self,
        host: str,
        transport: RemoteTransport | None = None,
        *,
        cancel: CancelToken | None = None,
        ctx: RunContext | None = None,
    ) -> None:
        self.host = host
        self.transport = transport or SshTransport(cancel=cancel, ctx=ctx)

    def _remote_argv(
        self, flake: FlakeURL, step: Step, override_inputs: Mapping[str, str] | None
    ) -> tuple[list[str] | None, str]:
        if isinstance(step, BuildStep):
            return [NIX, *build_args(flake, step.impure, override_inputs)], "remote build failed"
        if isinstance(step, LockfileStep):
            return [NIX, *lock_check_args(flake, override_inputs)], "remote lockfile check failed"
        if isinstance(step, FlakeCheckStep):
            return [NIX, *flake_check_args(flake, override_inputs)], "flake check failed"
        if isinstance(step, CustomStep):
            if step.kind is CustomKind.DEVSHELL and not step.command:
                return None, NO_COMMAND
            structured = custom_structured_args(flake, step)
            argv = [NIX, *structured] if structured is not None else list(step.command)
            return argv, "custom step failed"
        raise TypeError(f"unknown step kind: {type(step).__name__}")

    def run_step(
        self,
        flake: FlakeURL,
        step: Step,
        *,
        override_inputs: Mapping[str, str] | None = None,
    ) -> StepOutcome:
        started = time.perf_counter()
        output, error = "", ""
        argv, failure_prefix = self._remote_argv(flake, step, override_inputs)
        if argv is None:
            error = failure_prefix
        else:
            try:
                result = execute_remote_command(self.host, argv, self.transport)
            except RemoteHostError as exc:
                error = f"{failure_prefix}: {exc}"
            else:
                output = result.combined_output
                if not result.ok:
                    if isinstance(step, LockfileStep) and result.code != SSH_TRANSPORT_EXIT:
                        error = LOCKFILE_OUT_OF_DATE
                    else:
                        error = f"{failure_prefix}: {_remote_failure(result)}"
        return StepOutcome(
            name=step.key,
            success=not error,
            output=output,
            error=error,
            duration=time.perf_counter() - started,
        )


__all__ = [
    "RemoteStepRunner",
    "RemoteTransport",
    "SshTransport",
    "execute_remote_command",
    "quote_command",
    "ssh_argv",
]

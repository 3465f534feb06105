from __future__ import annotations

import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

from .logging import log_event

if TYPE_CHECKING:
    from .cancel import CancelToken
    from .context import RunContext

CODE_NOT_FOUND = 127
CODE_CANCELLED = 130
_POLL_SECONDS = 0.1
_TERM_GRACE_SECONDS = 0.5


@dataclass(frozen=True)
class CommandResult:
    code: int
    stdout: str
    stderr: str
    duration_ms: int

    @property
    def ok(self) -> bool:
        return self.code == 0

    @property
    def combined_output(self) -> str:
        return (self.stdout + self.stderr).strip()


def _terminate(proc: subprocess.Popen[str]) -> None:
    """Stop the child and everything it spawned; its process group shares the pipes."""
    if os.name == "nt":
        proc.kill()
        return
    try:
        os.killpg(proc.pid, signal.SIGTERM)
    except ProcessLookupError:
        return
    try:
        proc.wait(timeout=_TERM_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        pass
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _communicate(proc: subprocess.Popen[str], cancel: CancelToken | None) -> tuple[str, str, bool]:
    while True:
        try:
            stdout, stderr = proc.communicate(timeout=_POLL_SECONDS)
            return stdout or "", stderr or "", False
        except subprocess.TimeoutExpired:
            if cancel is not None and cancel.cancelled:
                _terminate(proc)
                stdout, stderr = proc.communicate()
                return stdout or "", stderr or "", True


def run_command(
    cmd: Sequence[str],
    cwd: Path | None = None,
    *,
    merge_stderr: bool = False,
    cancel: CancelToken | None = None,
    ctx: RunContext | None = None,
) -> CommandResult:
    """Run ``cmd`` to completion, killing it early when ``cancel`` is set.

    Spawn failures (missing binary, permission denied) are reported as exit
    code 127 with the OS error text on stderr rather than raised. With
    ``merge_stderr`` the child's stderr is interleaved into ``stdout``.
    """
    argv = list(cmd)
    started = time.monotonic()
    if cancel is not None and cancel.cancelled:
        return CommandResult(CODE_CANCELLED, "", "command cancelled before start", 0)
    try:
        proc = subprocess.Popen(
            argv,
            cwd=cwd,
            text=True,
            stdout=subprocess.PIPE,
            stderr=(subprocess.STDOUT if merge_stderr else subprocess.PIPE),
            stdin=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as exc:
        result = CommandResult(
            code=CODE_NOT_FOUND,
            stdout="",
            stderr=f"failed to start {argv[0] if argv else '<empty>'}: {exc}",
            duration_ms=int((time.monotonic() - started) * 1000),
        )
    else:
        stdout, stderr, killed = _communicate(proc, cancel)
        if killed:
            stderr = (stderr + "\ncommand cancelled").strip()
        result = CommandResult(
            code=(CODE_CANCELLED if killed else proc.returncode),
            stdout=stdout,
            stderr=stderr,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
    log_event(
        ctx,
        "debug",
        "process",
        "run-command",
        command=" ".join(argv),
        cwd=str(cwd or "."),
        code=result.code,
        duration_ms=result.duration_ms,
    )
    return result


__all__ = ["CODE_CANCELLED", "CODE_NOT_FOUND", "CommandResult", "run_command"]

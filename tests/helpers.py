from __future__ import annotations

import sys
from typing import Callable, Sequence

from flakeci.ci.nix import NixCmd, NixCommandError
from flakeci.core.process import CommandResult


class FakeNix(NixCmd):
    """Records nix invocations instead of running them.

    ``fail`` maps a nix subcommand prefix (``"build"``, ``"flake lock"``,
    ``"run"``...) to the exit code it should fail with.
    """

    def __init__(self, fail: dict[str, int] | None = None, stdout: str = "/nix/store/fake", fail_stdout: str = "") -> None:
        super().__init__()
        self.calls: list[tuple[str, ...]] = []
        self.fail = dict(fail or {})
        self.stdout = stdout
        self.fail_stdout = fail_stdout

    def run(self, args: Sequence[str]) -> str:
        args = tuple(args)
        self.calls.append(args)
        joined = " ".join(args)
        for prefix, code in self.fail.items():
            if joined.startswith(prefix):
                raise NixCommandError(args, code, f"error: {prefix} failed", self.fail_stdout)
        return self.stdout


class FakeTransport:
    """Stands in for ssh; ``respond`` maps an argv to a ``CommandResult``."""

    def __init__(self, respond: Callable[[Sequence[str]], CommandResult] | None = None) -> None:
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self._respond = respond or (lambda _argv: CommandResult(0, "ok", "", 1))

    def exec(self, host: str, argv: Sequence[str]) -> CommandResult:
        self.calls.append((host, tuple(argv)))
        return self._respond(argv)


def py_cmd(code: str) -> tuple[str, ...]:
    return (sys.executable, "-c", code)

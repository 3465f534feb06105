from __future__ import annotations

from typing import Sequence

import pytest

from flakeci.ci import nix as nix_module
from flakeci.ci.locator import FlakeURL
from flakeci.ci.model import BuildStep, CustomKind, CustomStep, FlakeCheckStep, LockfileStep
from flakeci.ci.nix import NixCmd, NixCommandError
from flakeci.ci.steps import LOCKFILE_OUT_OF_DATE, NO_COMMAND, LocalStepRunner
from flakeci.core.process import CommandResult
from helpers import FakeNix, py_cmd

FLAKE = FlakeURL("./repo")


def _no_spawn(argv: Sequence[str]) -> CommandResult:
    raise AssertionError(f"unexpected spawn: {argv}")


def test_build_runs_nix_build(fake_nix: FakeNix) -> None:
    runner = LocalStepRunner(fake_nix, spawn=_no_spawn)
    outcome = runner.run_step(FLAKE, BuildStep(impure=True), override_inputs={"b": "github:o/b", "a": "path:/a"})
    assert outcome.success is True
    assert outcome.name == "build"
    assert outcome.output == "/nix/store/fake"
    assert outcome.error == ""
    assert fake_nix.calls == [
        (
            "build", "./repo", "--no-link", "--print-out-paths", "--impure",
            "--override-input", "a", "path:/a",
            "--override-input", "b", "github:o/b",
        )
    ]


def test_lockfile_failure_has_fixed_message() -> None:
    nix = FakeNix(fail={"flake lock": 1})
    outcome = LocalStepRunner(nix, spawn=_no_spawn).run_step(FLAKE, LockfileStep())
    assert outcome.success is False
    assert outcome.error == LOCKFILE_OUT_OF_DATE
    assert nix.calls == [("flake", "lock", "--no-update-lock-file", "./repo")]


def test_flake_check_failure_reports_nix_error() -> None:
    nix = FakeNix(fail={"flake check": 1})
    outcome = LocalStepRunner(nix, spawn=_no_spawn).run_step(FLAKE, FlakeCheckStep())
    assert outcome.success is False
    assert outcome.name == "flakeCheck"
    assert outcome.error == "nix command failed: nix flake check ./repo (exit 1): error: flake check failed"


def test_empty_custom_command_fails_without_spawning(fake_nix: FakeNix) -> None:
    outcome = LocalStepRunner(fake_nix, spawn=_no_spawn).run_step(FLAKE, CustomStep("empty"))
    assert outcome.success is False
    assert "no command" in outcome.error
    assert outcome.error == NO_COMMAND
    assert fake_nix.calls == []


def test_custom_command_success_captures_combined_output(fake_nix: FakeNix) -> None:
    step = CustomStep("echo", py_cmd("import sys; print('out'); print('err', file=sys.stderr)"))
    outcome = LocalStepRunner(fake_nix).run_step(FLAKE, step)
    assert outcome.success is True
    assert outcome.name == "custom:echo"
    assert "out" in outcome.output
    assert "err" in outcome.output
    assert fake_nix.calls == []


def test_custom_command_nonzero_exit(fake_nix: FakeNix) -> None:
    step = CustomStep("fail", py_cmd("print('partial'); raise SystemExit(3)"))
    outcome = LocalStepRunner(fake_nix).run_step(FLAKE, step)
    assert outcome.success is False
    assert outcome.error == "exit status 3"
    assert outcome.output == "partial"


def test_missing_binary_is_a_step_failure(fake_nix: FakeNix) -> None:
    step = CustomStep("ghost", ("flakeci-definitely-not-a-binary", "--help"))
    outcome = LocalStepRunner(fake_nix).run_step(FLAKE, step)
    assert outcome.success is False
    assert "failed to start flakeci-definitely-not-a-binary" in outcome.error


def test_leading_nix_goes_through_structured_path(fake_nix: FakeNix) -> None:
    step = CustomStep("fmt", ("nix", "fmt", "--", "--check"))
    outcome = LocalStepRunner(fake_nix, spawn=_no_spawn).run_step(FLAKE, step)
    assert outcome.success is True
    assert fake_nix.calls == [("fmt", "--", "--check")]


def test_devshell_target_wraps_in_nix_develop(fake_nix: FakeNix) -> None:
    step = CustomStep("test", ("pytest", "-q"), target="ci")
    LocalStepRunner(fake_nix, spawn=_no_spawn).run_step(FLAKE, step)
    assert fake_nix.calls == [("develop", "./repo#ci", "-c", "pytest", "-q")]


def test_app_step_runs_default_app(fake_nix: FakeNix) -> None:
    step = CustomStep("app", kind=CustomKind.APP, args=("--flag",))
    outcome = LocalStepRunner(fake_nix, spawn=_no_spawn).run_step(FLAKE, step)
    assert outcome.success is True
    assert fake_nix.calls == [("run", "./repo#default", "--", "--flag")]


def test_app_step_failure_reports_nix_error() -> None:
    nix = FakeNix(fail={"run": 2})
    step = CustomStep("app", kind=CustomKind.APP, target="server")
    outcome = LocalStepRunner(nix, spawn=_no_spawn).run_step(FLAKE, step)
    assert outcome.success is False
    assert outcome.error.startswith("nix command failed: nix run ./repo#server -- (exit 2)")


def test_unknown_step_kind_is_rejected(fake_nix: FakeNix) -> None:
    with pytest.raises(TypeError):
        LocalStepRunner(fake_nix).run_step(FLAKE, object())  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("step", "prefix"),
    [
        (BuildStep(), "build"),
        (LockfileStep(), "flake lock"),
        (FlakeCheckStep(), "flake check"),
        (CustomStep("fmt", ("nix", "fmt")), "fmt"),
    ],
)
def test_failed_nix_step_keeps_its_stdout(step: object, prefix: str) -> None:
    nix = FakeNix(fail={prefix: 1}, fail_stdout="/nix/store/partial-out\n")
    outcome = LocalStepRunner(nix, spawn=_no_spawn).run_step(FLAKE, step)  # type: ignore[arg-type]
    assert outcome.success is False
    assert outcome.output == "/nix/store/partial-out"
    assert outcome.error


def test_nix_cmd_error_carries_stdout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(nix_module, "run_command", lambda argv, **_kw: CommandResult(1, "partial\n", "error: boom", 3))
    with pytest.raises(NixCommandError) as err:
        NixCmd().build_all(FLAKE)
    assert err.value.stdout == "partial\n"
    assert err.value.exit_code == 1
    assert str(err.value) == "nix command failed: nix build ./repo --no-link --print-out-paths (exit 1): error: boom"

from __future__ import annotations

import threading
import time
from typing import Mapping

import pytest

from flakeci.ci.locator import FlakeURL
from flakeci.ci.model import (
    BuildStep,
    CIConfig,
    CustomStep,
    FlakeCheckStep,
    LockfileStep,
    RunOptions,
    Step,
    StepOutcome,
    StepsConfig,
    SubflakeConfig,
)
from flakeci.ci.orchestrator import make_step_runner, run
from flakeci.ci.remote import RemoteStepRunner
from flakeci.ci.steps import LocalStepRunner
from flakeci.core.cancel import CancelToken
from flakeci.core.errors import RunCancelledError, SubflakeError
from helpers import FakeNix, py_cmd

ONLY_CUSTOM = StepsConfig(
    build=BuildStep(enable=False),
    lockfile=LockfileStep(enable=False),
    flake_check=FlakeCheckStep(enable=False),
    custom=(CustomStep("work", ("true",)),),
)


class GaugeRunner:
    """Tracks how many steps are in flight at once."""

    def __init__(self, delay: float = 0.05) -> None:
        self.delay = delay
        self.active = 0
        self.peak = 0
        self.order: list[str] = []
        self._lock = threading.Lock()

    def run_step(self, flake: FlakeURL, step: Step, *, override_inputs: Mapping[str, str] | None = None) -> StepOutcome:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.order.append(str(flake))
        time.sleep(self.delay)
        with self._lock:
            self.active -= 1
        return StepOutcome(step.key, True, duration=self.delay)


def _config(names: list[str], steps: StepsConfig = ONLY_CUSTOM) -> CIConfig:
    return CIConfig(subflakes={name: SubflakeConfig(dir=name, steps=steps) for name in names})


def test_all_skipped_returns_empty_list() -> None:
    config = CIConfig(subflakes={"a": SubflakeConfig(skip=True), "b": SubflakeConfig(skip=True)})
    assert run(".", config, RunOptions(), runner=GaugeRunner()) == []
    assert run(".", config, RunOptions(parallel=True), runner=GaugeRunner()) == []


def test_whitelisted_subflake_is_absent_from_results() -> None:
    config = CIConfig(
        subflakes={
            "linux": SubflakeConfig(dir="linux", systems=("x86_64-linux",), steps=ONLY_CUSTOM),
            "darwin": SubflakeConfig(dir="darwin", systems=("aarch64-darwin",), steps=ONLY_CUSTOM),
        }
    )
    results = run(".", config, RunOptions(systems=("x86_64-linux",)), runner=GaugeRunner(0))
    assert [r.subflake for r in results] == ["linux"]


def test_sequential_runs_in_selection_order() -> None:
    runner = GaugeRunner(0.01)
    results = run(".", _config(["c", "a", "b"]), RunOptions(), runner=runner)
    assert [r.subflake for r in results] == ["c", "a", "b"]
    assert runner.order == ["./c", "./a", "./b"]
    assert runner.peak == 1


def test_parallel_returns_every_subflake_in_submission_order() -> None:
    names = [f"s{i}" for i in range(6)]
    runner = GaugeRunner()
    results = run(".", _config(names), RunOptions(parallel=True), runner=runner)
    assert [r.subflake for r in results] == names
    assert all(r.success for r in results)
    assert runner.peak > 1


@pytest.mark.parametrize("limit", [1, 2, 3])
def test_max_concurrency_bounds_active_subflakes(limit: int) -> None:
    runner = GaugeRunner()
    results = run(".", _config([f"s{i}" for i in range(7)]), RunOptions(parallel=True, max_concurrency=limit), runner=runner)
    assert len(results) == 7
    assert 1 <= runner.peak <= limit


def test_one_failing_subflake_among_passing_ones() -> None:
    failing = StepsConfig(
        build=BuildStep(enable=False),
        custom=(CustomStep("fail", py_cmd("raise SystemExit(1)")),),
        lockfile=LockfileStep(enable=False),
        flake_check=FlakeCheckStep(enable=False),
    )
    passing = StepsConfig(
        build=BuildStep(enable=False),
        lockfile=LockfileStep(enable=False),
        flake_check=FlakeCheckStep(enable=False),
        custom=(CustomStep("ok", py_cmd("print('ok')")),),
    )
    config = CIConfig(
        subflakes={
            "one": SubflakeConfig(dir="one", steps=passing),
            "two": SubflakeConfig(dir="two", steps=failing),
            "three": SubflakeConfig(dir="three", steps=passing),
        }
    )
    results = run(".", config, RunOptions(parallel=True, max_concurrency=2), runner=LocalStepRunner(FakeNix()))
    assert len(results) == 3
    assert [r.subflake for r in results if not r.success] == ["two"]
    assert results[1].steps["custom:fail"].error == "exit status 1"


@pytest.mark.parametrize("parallel", [False, True])
def test_structural_error_aborts_the_run(parallel: bool) -> None:
    config = CIConfig(
        subflakes={
            "good": SubflakeConfig(dir="good", steps=ONLY_CUSTOM),
            "bad": SubflakeConfig(dir="/etc", steps=ONLY_CUSTOM),
        }
    )
    with pytest.raises(SubflakeError, match="failed to run subflake bad"):
        run(".", config, RunOptions(parallel=parallel, max_concurrency=1), runner=GaugeRunner(0.01))


def test_cancelled_parent_token_aborts_before_any_step() -> None:
    token = CancelToken()
    token.cancel()
    runner = GaugeRunner(0)
    with pytest.raises(RunCancelledError):
        run(".", _config(["a", "b"]), RunOptions(), runner=runner, cancel=token)
    assert runner.order == []


def test_cancellation_during_parallel_run() -> None:
    token = CancelToken()

    class CancellingRunner(GaugeRunner):
        def run_step(self, flake: FlakeURL, step: Step, *, override_inputs: Mapping[str, str] | None = None) -> StepOutcome:
            token.cancel()
            return super().run_step(flake, step, override_inputs=override_inputs)

    runner = CancellingRunner(0.01)
    with pytest.raises(RunCancelledError):
        run(".", _config([f"s{i}" for i in range(4)]), RunOptions(parallel=True, max_concurrency=1), runner=runner, cancel=token)
    assert len(runner.order) < 4


def test_make_step_runner_selects_backend() -> None:
    assert isinstance(make_step_runner(RunOptions()), LocalStepRunner)
    remote = make_step_runner(RunOptions(remote_host="ci@builder"))
    assert isinstance(remote, RemoteStepRunner)
    assert remote.host == "ci@builder"

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from ..core.errors import LocatorError, RunCancelledError, SubflakeError
from ..core.logging import log_event
from .locator import FlakeURL, resolve_locator
from .model import RunOptions, StepOutcome, SubflakeConfig, SubflakeResult
from .steps import StepRunner

if TYPE_CHECKING:
    from ..core.cancel import CancelToken
    from ..core.context import RunContext


def run_subflake(
    flake: FlakeURL,
    name: str,
    subflake: SubflakeConfig,
    options: RunOptions,
    runner: StepRunner,
    *,
    cancel: CancelToken | None = None,
    ctx: RunContext | None = None,
) -> SubflakeResult:
    """Run every enabled step of one subflake and fold the outcomes together.

    A failing step does not stop the remaining steps. A locator that cannot
    be resolved raises ``SubflakeError`` before any step runs.
    """
    started = time.perf_counter()
    try:
        locator = resolve_locator(flake, subflake.dir)
    except LocatorError as exc:
        raise SubflakeError(name, f"failed to resolve subflake URL: {exc}") from exc

    log_event(ctx, "info", "ci", "subflake-start", subflake=name, flake=str(locator))
    outcomes: dict[str, StepOutcome] = {}
    for step in subflake.steps.enabled_steps(options.systems):
        if cancel is not None and cancel.cancelled:
            raise RunCancelledError(f"ci run cancelled while running subflake {name}")
        outcome = runner.run_step(locator, step, override_inputs=subflake.override_inputs)
        outcomes[step.key] = outcome
        log_event(
            ctx,
            "debug",
            "ci",
            "step-finish",
            subflake=name,
            step=step.key,
            success=outcome.success,
            duration_ms=int(outcome.duration * 1000),
        )
    if cancel is not None and cancel.cancelled:
        raise RunCancelledError(f"ci run cancelled while running subflake {name}")
    return SubflakeResult.from_outcomes(name, outcomes, time.perf_counter() - started)


__all__ = ["run_subflake"]

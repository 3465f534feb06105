"""Pipeline orchestrator: selects subflakes and runs them one by one or concurrently.

Step failures are data inside each ``SubflakeResult``. Structural failures
(``SubflakeError``) and cancellation abort the whole run and are raised;
results gathered so far are discarded.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING

from ..core.cancel import CancelToken
from ..core.errors import RunCancelledError
from ..core.logging import log_event
from .executor import run_subflake
from .locator import FlakeURL
from .model import CIConfig, RunOptions, SubflakeConfig, SubflakeResult
from .remote import RemoteStepRunner
from .steps import LocalStepRunner, StepRunner

if TYPE_CHECKING:
    from ..core.context import RunContext

_GATE_POLL_SECONDS = 0.05


def make_step_runner(options: RunOptions, *, cancel: CancelToken | None = None, ctx: RunContext | None = None) -> StepRunner:
    if options.remote_host:
        return RemoteStepRunner(options.remote_host, cancel=cancel, ctx=ctx)
    return LocalStepRunner(cancel=cancel, ctx=ctx)


def run(
    flake: FlakeURL | str,
    config: CIConfig,
    options: RunOptions,
    *,
    runner: StepRunner | None = None,
    cancel: CancelToken | None = None,
    ctx: RunContext | None = None,
) -> list[SubflakeResult]:
    flake_url = flake if isinstance(flake, FlakeURL) else FlakeURL.parse(flake)
    selected = list(config.selected(options.systems))
    log_event(
        ctx,
        "info",
        "ci",
        "run-start",
        flake=str(flake_url),
        systems=",".join(options.systems),
        subflakes=",".join(name for name, _ in selected),
        parallel=options.parallel,
        max_concurrency=options.max_concurrency,
        remote_host=options.remote_host or "",
    )
    token = CancelToken(parent=cancel)
    step_runner = runner or make_step_runner(options, cancel=token, ctx=ctx)
    if options.parallel:
        return _run_parallel(flake_url, selected, options, step_runner, token, ctx)
    return _run_sequential(flake_url, selected, options, step_runner, token, ctx)


def _run_sequential(
    flake: FlakeURL,
    selected: list[tuple[str, SubflakeConfig]],
    options: RunOptions,
    runner: StepRunner,
    token: CancelToken,
    ctx: RunContext | None,
) -> list[SubflakeResult]:
    results: list[SubflakeResult] = []
    for name, subflake in selected:
        if token.cancelled:
            raise RunCancelledError()
        results.append(run_subflake(flake, name, subflake, options, runner, cancel=token, ctx=ctx))
    return results


def _run_parallel(
    flake: FlakeURL,
    selected: list[tuple[str, SubflakeConfig]],
    options: RunOptions,
    runner: StepRunner,
    token: CancelToken,
    ctx: RunContext | None,
) -> list[SubflakeResult]:
    if not selected:
        return []
    limit = options.max_concurrency if options.max_concurrency > 0 else len(selected)
    gate = threading.BoundedSemaphore(limit)

    def _admitted(name: str, subflake: SubflakeConfig) -> SubflakeResult:
        while not gate.acquire(timeout=_GATE_POLL_SECONDS):
            if token.cancelled:
                raise RunCancelledError()
        try:
            if token.cancelled:
                raise RunCancelledError()
            return run_subflake(flake, name, subflake, options, runner, cancel=token, ctx=ctx)
        finally:
            gate.release()

    by_index: dict[int, SubflakeResult] = {}
    first_error: BaseException | None = None
    with ThreadPoolExecutor(max_workers=len(selected), thread_name_prefix="flakeci-subflake") as pool:
        futures = {pool.submit(_admitted, name, subflake): index for index, (name, subflake) in enumerate(selected)}
        for future in as_completed(futures):
            try:
                by_index[futures[future]] = future.result()
            except Exception as exc:
                if first_error is None:
                    first_error = exc
                    token.cancel()
    if first_error is not None:
        log_event(ctx, "error", "ci", "run-aborted", error=str(first_error))
        raise first_error
    return [by_index[index] for index in sorted(by_index)]


__all__ = ["make_step_runner", "run"]

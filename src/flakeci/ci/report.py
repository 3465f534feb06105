from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Sequence

from ..contracts.ids import RESULTS
from ..contracts.validate import validate_self
from ..core.logging import log_event
from .model import SubflakeResult

if TYPE_CHECKING:
    from ..core.context import RunContext


def results_payload(results: Sequence[SubflakeResult]) -> list[dict[str, object]]:
    return validate_self(RESULTS, [result.to_json() for result in results])


def results_from_payload(payload: Sequence[dict[str, object]]) -> list[SubflakeResult]:
    validate_self(RESULTS, list(payload))
    return [SubflakeResult.from_json(row) for row in payload]


def write_results(path: Path, results: Sequence[SubflakeResult]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(results_payload(results), indent=2) + "\n", encoding="utf-8")
    return path


def read_results(path: Path) -> list[SubflakeResult]:
    return results_from_payload(json.loads(path.read_text(encoding="utf-8")))


def results_summary(results: Sequence[SubflakeResult]) -> dict[str, int]:
    failed = sum(1 for result in results if not result.success)
    return {"passed": len(results) - failed, "failed": failed, "total": len(results)}


@contextmanager
def github_log_group(name: str, enabled: bool = True) -> Iterator[None]:
    if not enabled:
        yield
        return
    sys.stdout.write(f"::group::{name}\n")
    sys.stdout.flush()
    try:
        yield
    finally:
        sys.stdout.write("::endgroup::\n")
        sys.stdout.flush()


def log_result(ctx: RunContext | None, result: SubflakeResult) -> None:
    log_event(
        ctx,
        "info",
        "ci",
        "result",
        subflake=result.subflake,
        success=result.success,
        duration_ms=int(result.duration * 1000),
    )
    for name, outcome in result.steps.items():
        log_event(ctx, "info", "ci", "step", subflake=result.subflake, name=name, success=outcome.success, duration_ms=int(outcome.duration * 1000))
        if not outcome.success:
            log_event(ctx, "error", "ci", "step-failed", subflake=result.subflake, name=name, error=outcome.error)


def summary_lines(result: SubflakeResult) -> list[str]:
    lines = [f"{'PASS' if result.success else 'FAIL'} {result.subflake} ({result.duration:.2f}s)"]
    for name, outcome in result.steps.items():
        status = "ok" if outcome.success else f"failed: {outcome.error}"
        lines.append(f"  {name} ({outcome.duration:.2f}s) {status}")
    return lines


def report_results(ctx: RunContext | None, results: Sequence[SubflakeResult], *, grouped: bool = False) -> None:
    """Log every result; with ``grouped`` also print a per-step summary inside a log group on stdout."""
    for result in results:
        with github_log_group(f"subflake {result.subflake}", enabled=grouped):
            if grouped:
                sys.stdout.write("\n".join(summary_lines(result)) + "\n")
                sys.stdout.flush()
            log_result(ctx, result)


__all__ = [
    "github_log_group",
    "log_result",
    "read_results",
    "report_results",
    "results_from_payload",
    "results_payload",
    "results_summary",
    "summary_lines",
    "write_results",
]

from __future__ import annotations

import argparse
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from ..contracts.ids import MATRIX
from ..contracts.validate import validate
from ..core.cancel import CancelToken
from ..core.context import RunContext
from ..core.env import env_flag
from ..core.exit_codes import ERR_STEPS_FAILED, ERR_USAGE, OK
from ..core.logging import log_event
from ..core.serialize import dumps_json
from .config import DEFAULT_CONFIG_FILE, load_config, load_config_or_default
from .locator import FlakeURL
from .matrix import generate_matrix
from .model import CIConfig, RunOptions
from .nix import current_system
from .orchestrator import run
from .report import report_results, results_payload, results_summary, write_results

DEFAULT_MATRIX_SYSTEMS = ("x86_64-linux",)


def parse_systems(values: list[str] | None) -> tuple[str, ...]:
    systems: list[str] = []
    for value in values or ():
        for item in value.split(","):
            item = item.strip()
            if item and item not in systems:
                systems.append(item)
    return tuple(systems)


@contextmanager
def _cancel_on_sigint(token: CancelToken) -> Iterator[None]:
    def _handler(_signum: int, _frame: object) -> None:
        token.cancel()

    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _run_options(ns: argparse.Namespace) -> RunOptions:
    if ns.max_concurrency < 0:
        raise ValueError("--max-concurrency must be >= 0")
    return RunOptions(
        systems=parse_systems(ns.systems) or (current_system(),),
        parallel=bool(ns.parallel),
        max_concurrency=int(ns.max_concurrency),
        remote_host=(ns.remote_host or None),
        emit_grouped_output=bool(ns.github_output) or env_flag("GITHUB_ACTIONS"),
    )


def _load_config(ns: argparse.Namespace) -> CIConfig:
    if ns.config is None:
        return load_config_or_default(DEFAULT_CONFIG_FILE, explicit=False)
    return load_config(ns.config)


def _ci_run(ctx: RunContext, ns: argparse.Namespace, as_json: bool) -> int:
    flake = FlakeURL.parse(ns.flake)
    config = _load_config(ns)
    try:
        options = _run_options(ns)
    except ValueError as exc:
        log_event(ctx, "error", "ci", "usage", error=str(exc))
        return ERR_USAGE
    token = CancelToken()
    with _cancel_on_sigint(token):
        results = run(flake, config, options, cancel=token, ctx=ctx)
    report_results(ctx, results, grouped=options.emit_grouped_output)
    out_path: Path | None = None
    if not ns.no_link and ns.out_link:
        out_path = write_results(Path(ns.out_link), results)
        log_event(ctx, "info", "ci", "results-written", path=str(out_path))
    summary = results_summary(results)
    if as_json:
        print(
            dumps_json(
                {
                    "schema_version": 1,
                    "tool": "flakeci",
                    "status": "ok" if summary["failed"] == 0 else "error",
                    "run_id": ctx.run_id,
                    "flake": str(flake),
                    "systems": list(options.systems),
                    "summary": summary,
                    "results": results_payload(results),
                    "out_link": str(out_path) if out_path else "",
                }
            )
        )
    else:
        for result in results:
            print(f"{'PASS' if result.success else 'FAIL'} {result.subflake} ({result.duration:.2f}s)")
            for outcome in result.failed_steps:
                print(f"  {outcome.name}: {outcome.error}")
        print(f"ci run: passed={summary['passed']} failed={summary['failed']} total={summary['total']}")
    return OK if summary["failed"] == 0 else ERR_STEPS_FAILED


def _ci_gh_matrix(ctx: RunContext, ns: argparse.Namespace) -> int:
    config = _load_config(ns)
    systems = parse_systems(ns.systems) or DEFAULT_MATRIX_SYSTEMS
    matrix = generate_matrix(systems, config)
    validate(MATRIX, matrix.as_dict())
    print(matrix.to_json())
    log_event(ctx, "info", "ci", "matrix", rows=matrix.count(), systems=",".join(systems))
    return OK


def run_ci_command(ctx: RunContext, ns: argparse.Namespace) -> int:
    as_json = ctx.output_format == "json" or bool(getattr(ns, "json", False))
    if ns.ci_cmd == "run":
        return _ci_run(ctx, ns, as_json)
    if ns.ci_cmd == "gh-matrix":
        return _ci_gh_matrix(ctx, ns)
    return ERR_USAGE


def configure_ci_parser(sub: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    p = sub.add_parser("ci", help="run CI steps for a flake and its subflakes")
    ci_sub = p.add_subparsers(dest="ci_cmd", required=True)

    run_p = ci_sub.add_parser("run", help="run the configured CI steps")
    run_p.add_argument("flake", nargs="?", default=".", help="flake URL (default: .)")
    run_p.add_argument("--systems", action="append", help="systems to build for, comma separated")
    run_p.add_argument("-c", "--config", default=None, help=f"path to the configuration file (default: {DEFAULT_CONFIG_FILE})")
    run_p.add_argument("--parallel", action="store_true", help="run subflakes concurrently")
    run_p.add_argument("--max-concurrency", type=int, default=0, help="cap on concurrent subflakes (0 = unbounded)")
    run_p.add_argument("--remote-host", help="run steps on this host over ssh (e.g. user@host)")
    run_p.add_argument("--github-output", action="store_true", help="print GitHub Actions log groups")
    run_p.add_argument("-o", "--out-link", default="result.json", help="path of the results JSON file")
    run_p.add_argument("--no-link", action="store_true", help="do not write the results JSON file")
    run_p.add_argument("--json", action="store_true", help="emit JSON output")

    matrix_p = ci_sub.add_parser("gh-matrix", help="print a GitHub Actions build matrix")
    matrix_p.add_argument("--systems", action="append", help="systems to include, comma separated")
    matrix_p.add_argument("-c", "--config", default=None, help=f"path to the configuration file (default: {DEFAULT_CONFIG_FILE})")


__all__ = ["configure_ci_parser", "parse_systems", "run_ci_command"]

from __future__ import annotations

import argparse
import platform
import sys

from .. import __version__
from ..ci.command import configure_ci_parser, run_ci_command
from ..core.context import RunContext
from ..core.env import env_flag
from ..core.errors import FlakeCIError
from ..core.exit_codes import ERR_CONFIG, ERR_INTERNAL, ERR_USAGE
from ..core.logging import log_event
from .output import build_base_payload, emit, render_error, resolve_output_format


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="flakeci")
    p.add_argument("--version", action="version", version=f"flakeci {__version__}")
    p.add_argument("--json", action="store_true", help="emit JSON output")
    p.add_argument("--format", choices=["text", "json"], default=None, help="output format")
    p.add_argument("--run-id", help="run identifier for logs and reports")
    p.add_argument("--profile", help="profile id")
    p.add_argument("--log-json", action="store_true", help="write log events as JSON lines")
    vg = p.add_mutually_exclusive_group()
    vg.add_argument("--verbose", action="store_true", help="enable verbose diagnostics")
    vg.add_argument("--quiet", action="store_true", help="only emit errors")
    sub = p.add_subparsers(dest="cmd", required=True)

    version_p = sub.add_parser("version", help="print version information")
    version_p.add_argument("--json", action="store_true", help="emit JSON output")
    configure_ci_parser(sub)
    return p


def main(argv: list[str] | None = None) -> int:
    raw_argv = argv if argv is not None else sys.argv[1:]
    p = build_parser()
    ns = p.parse_args(raw_argv)
    json_flag = "--json" in raw_argv
    if ns.format and json_flag and ns.format != "json":
        print(render_error(as_json=False, message="conflicting output flags: use either --format json or --json", code=ERR_CONFIG), file=sys.stderr)
        return ERR_CONFIG
    fmt = resolve_output_format(cli_json=json_flag, cli_format=ns.format, ci_present=env_flag("CI"))
    ctx = RunContext.from_args(
        ns.run_id,
        ns.profile,
        fmt,
        verbose=ns.verbose,
        quiet=ns.quiet,
        log_json=ns.log_json,
    )
    try:
        log_event(ctx, "debug", "cli", "start", cmd=ns.cmd, fmt=ctx.output_format)
        as_json = ctx.output_format == "json"
        if ns.cmd == "version":
            emit(
                {
                    **build_base_payload(ctx),
                    "flakeci_version": __version__,
                    "python_version": platform.python_version(),
                },
                as_json,
            )
            return 0
        if ns.cmd == "ci":
            return run_ci_command(ctx, ns)
        return ERR_USAGE
    except FlakeCIError as exc:
        print(render_error(as_json=(ctx.output_format == "json"), message=str(exc), code=exc.code), file=sys.stderr)
        return exc.code
    except Exception as exc:  # pragma: no cover
        print(render_error(as_json=(ctx.output_format == "json"), message=f"internal error: {exc}", code=ERR_INTERNAL), file=sys.stderr)
        return ERR_INTERNAL


if __name__ == "__main__":
    raise SystemExit(main())

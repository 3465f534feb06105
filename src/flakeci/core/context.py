from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from .env import getenv

OutputFormat = Literal["text", "json"]


def build_run_id(prefix: str = "flakeci") -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"{prefix}-{stamp}"


@dataclass(frozen=True)
class RunContext:
    run_id: str
    profile: str
    cwd: Path
    output_format: OutputFormat
    verbose: bool
    quiet: bool
    log_json: bool

    @classmethod
    def from_args(
        cls,
        run_id: str | None,
        profile: str | None,
        output_format: OutputFormat = "text",
        verbose: bool = False,
        quiet: bool = False,
        log_json: bool = False,
        cwd: Path | None = None,
    ) -> "RunContext":
        resolved_run_id = run_id or getenv("FLAKECI_RUN_ID") or build_run_id()
        resolved_profile = profile or getenv("FLAKECI_PROFILE", "local") or "local"
        return cls(
            run_id=resolved_run_id,
            profile=resolved_profile,
            cwd=(cwd or Path.cwd()).resolve(),
            output_format=output_format,
            verbose=verbose,
            quiet=quiet,
            log_json=log_json,
        )

from __future__ import annotations

import inspect
import sys
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from .serialize import dumps_json

if TYPE_CHECKING:
    from .context import RunContext

_LOCK = threading.Lock()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def _enabled(ctx: RunContext, level: str) -> bool:
    if level == "error":
        return True
    if ctx.quiet:
        return False
    if level == "debug":
        return ctx.verbose
    return True


def log_event(ctx: RunContext | None, level: str, component: str, action: str, **fields: object) -> None:
    if ctx is None or not _enabled(ctx, level):
        return
    caller = inspect.stack(0)[1]
    payload = {
        "ts": utc_now_iso(),
        "level": level,
        "run_id": ctx.run_id,
        "component": component,
        "action": action,
        "file": caller.filename,
        "line": caller.lineno,
        **fields,
    }
    if ctx.log_json:
        line = dumps_json(payload)
    else:
        core = f"ts={payload['ts']} level={level} run_id={ctx.run_id} component={component} action={action}"
        extras = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        line = core if not extras else f"{core} {extras}"
    with _LOCK:
        sys.stderr.write(line + "\n")


__all__ = ["log_event", "utc_now_iso"]

"""Cooperative cancellation shared by the orchestrator and the process layer."""

from __future__ import annotations

import threading


class CancelToken:
    """A settable flag that can be chained to a parent token.

    A child token reports cancelled when either it or any ancestor was
    cancelled; cancelling a child never affects the parent.
    """

    def __init__(self, parent: CancelToken | None = None) -> None:
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled


__all__ = ["CancelToken"]

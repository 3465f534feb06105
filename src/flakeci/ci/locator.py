"""Flake URL handling.

Only the pieces the CI engine needs: parsing, attribute manipulation and
joining a base flake with a subflake directory.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass

from ..core.errors import LocatorError

_FORBIDDEN_DIR_CHARS = ("#", "?", "&", "\x00", "\n")


@dataclass(frozen=True)
class FlakeURL:
    url: str

    def __str__(self) -> str:
        return self.url

    @classmethod
    def parse(cls, raw: str) -> "FlakeURL":
        value = (raw or "").strip()
        if not value:
            raise LocatorError("empty flake URL")
        return cls(value)

    def as_local_path(self) -> str:
        """Return the path part of a path-like URL, or ``""`` for remote refs."""
        s = self.url.removeprefix("path:")
        if not (s.startswith(".") or s.startswith("/")):
            return ""
        for sep in ("?", "#"):
            idx = s.find(sep)
            if idx != -1:
                s = s[:idx]
        return s

    @property
    def is_local(self) -> bool:
        return self.as_local_path() != ""

    def split_attr(self) -> tuple[str, str]:
        base, sep, attr = self.url.partition("#")
        return base, attr if sep else ""

    def without_attr(self) -> "FlakeURL":
        return FlakeURL(self.split_attr()[0])

    def with_attr(self, attr: str) -> "FlakeURL":
        base = self.split_attr()[0]
        return FlakeURL(f"{base}#{attr}" if attr else base)

    def sub_flake(self, directory: str) -> "FlakeURL":
        """Point at the flake in ``directory`` relative to this one.

        Local paths are joined; other references get a ``dir=`` query
        parameter. ``"."`` returns this URL unchanged.
        """
        if posixpath.normpath(directory) == ".":
            return self
        local = self.as_local_path()
        if local:
            joined = posixpath.normpath(posixpath.join(local, directory))
            if not joined.startswith((".", "/")):
                # a bare relative name would be read as a registry ref by nix
                joined = f"./{joined}"
            prefix = "path:" if self.url.startswith("path:") else ""
            return FlakeURL(f"{prefix}{joined}")
        base, attr = self.split_attr()
        joiner = "&" if "?" in base else "?"
        joined = f"{base}{joiner}dir={directory}"
        return FlakeURL(f"{joined}#{attr}" if attr else joined)


def resolve_locator(base: FlakeURL | str, directory: str) -> FlakeURL:
    flake = base if isinstance(base, FlakeURL) else FlakeURL.parse(base)
    if not flake.url:
        raise LocatorError("empty flake URL")
    directory = directory.strip() if directory else "."
    if not directory:
        directory = "."
    if directory.startswith("/"):
        raise LocatorError(f"subflake dir must be relative: {directory}")
    bad = [ch for ch in _FORBIDDEN_DIR_CHARS if ch in directory]
    if bad:
        raise LocatorError(f"invalid character {bad[0]!r} in subflake dir: {directory!r}")
    return flake.sub_flake(directory)


__all__ = ["FlakeURL", "resolve_locator"]

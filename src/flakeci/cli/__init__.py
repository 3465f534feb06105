"""Command line entry points; the parser module is imported on first use."""

from __future__ import annotations

import argparse
from importlib import import_module

__all__ = ["build_parser", "main"]


def build_parser() -> argparse.ArgumentParser:
    return import_module("flakeci.cli.main").build_parser()


def main(argv: list[str] | None = None) -> int:
    return import_module("flakeci.cli.main").main(argv)

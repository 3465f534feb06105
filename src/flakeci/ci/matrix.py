from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Sequence

from .model import CIConfig


@dataclass(frozen=True)
class MatrixRow:
    system: str
    subflake: str

    def to_json(self) -> dict[str, str]:
        return {"system": self.system, "subflake": self.subflake}


@dataclass(frozen=True)
class GitHubMatrix:
    include: tuple[MatrixRow, ...] = ()

    def count(self) -> int:
        return len(self.include)

    def as_dict(self) -> dict[str, Any]:
        return {"include": [row.to_json() for row in self.include]}

    def to_json(self) -> str:
        return json.dumps(self.as_dict(), indent=2)


def generate_matrix(systems: Sequence[str], config: CIConfig) -> GitHubMatrix:
    """Every (system, subflake) pair that CI should build.

    Systems keep the order given; subflakes are visited in name order so the
    output does not depend on how the configuration was assembled.
    """
    rows: list[MatrixRow] = []
    for system in systems:
        for name in sorted(config.subflakes):
            subflake = config.subflakes[name]
            if subflake.skip or not subflake.can_run_on([system]):
                continue
            rows.append(MatrixRow(system=system, subflake=name))
    return GitHubMatrix(include=tuple(rows))


__all__ = ["GitHubMatrix", "MatrixRow", "generate_matrix"]

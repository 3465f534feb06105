from __future__ import annotations

CONFIG = "flakeci.config.v1"
RESULTS = "flakeci.results.v1"
MATRIX = "flakeci.matrix.v1"

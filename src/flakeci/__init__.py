__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ci",
    "cli",
    "contracts",
    "core",
]

"""xdrsync package root exposing the reconciliation engine."""

from .core import (  # isort: skip
    ReconciliationEngine,
    ReconciliationResult,
    load_config,
)

__all__ = [
    "ReconciliationEngine",
    "ReconciliationResult",
    "load_config",
]

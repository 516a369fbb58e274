"""xdrsync core package - cross-ecosystem XDR revision reconciliation."""

from .config import ConfigValidator, XdrsyncConfig, load_config
from .engine import ReconciliationEngine
from .errors import (
    ConfigError,
    ExtractionFailure,
    FetchFailure,
    PreconditionViolation,
    ReconciliationError,
)
from .extract import extract_module_revision, extract_pin
from .fetch import ContentFetcher, MarkerSource
from .fields import PatternFieldExtractor, extract_field
from .models import (
    Commit,
    DependencyReference,
    Dimension,
    Ecosystem,
    Outcome,
    PackageVersion,
    ReconciliationResult,
    RevisionPin,
)
from .toolchain import CommandResult, Toolchain

__all__ = [
    "Commit",
    "CommandResult",
    "ConfigError",
    "ConfigValidator",
    "ContentFetcher",
    "DependencyReference",
    "Dimension",
    "Ecosystem",
    "ExtractionFailure",
    "FetchFailure",
    "MarkerSource",
    "Outcome",
    "PackageVersion",
    "PatternFieldExtractor",
    "PreconditionViolation",
    "ReconciliationEngine",
    "ReconciliationError",
    "ReconciliationResult",
    "RevisionPin",
    "Toolchain",
    "XdrsyncConfig",
    "extract_field",
    "extract_module_revision",
    "extract_pin",
    "load_config",
]

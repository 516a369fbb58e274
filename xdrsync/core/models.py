"""Data structures shared by the xdrsync reconciliation stages."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

COMMIT_HASH_PATTERN = re.compile(r"^[0-9a-fA-F]{40}$")


class Ecosystem(str, Enum):
    """Toolchains that resolve their own copy of the XDR definitions."""

    NATIVE_COMPILED = "cargo"
    MANAGED_RUNTIME = "go"


class Dimension(str, Enum):
    """Which pair of independently derived revisions disagreed."""

    SCHEMA_REVISION_DRIFT = "schema-revision-drift"
    SERVER_ARTIFACT_DRIFT = "server-artifact-drift"
    SERVER_SCHEMA_PIN_DRIFT = "server-schema-pin-drift"


class Outcome(str, Enum):
    CONSISTENT = "consistent"
    MISMATCH = "mismatch"
    PRECONDITION_VIOLATION = "precondition-violation"
    EXTRACTION_FAILURE = "extraction-failure"
    FETCH_FAILURE = "fetch-failure"


def is_commit_hash(value: str) -> bool:
    return bool(COMMIT_HASH_PATTERN.match(value))


@dataclass(frozen=True)
class Commit:
    """A source-control commit pin (always 40 hex characters)."""

    hash: str

    def __post_init__(self) -> None:
        if not is_commit_hash(self.hash):
            raise ValueError(f"commit hash must be 40 hex characters: {self.hash!r}")

    @property
    def kind(self) -> str:
        return "commit"

    def __str__(self) -> str:
        return self.hash


@dataclass(frozen=True)
class PackageVersion:
    """A published package version pin; never validated further."""

    version: str

    @property
    def kind(self) -> str:
        return "version"

    def __str__(self) -> str:
        return self.version


RevisionPin = Union[Commit, PackageVersion]


def pin_from_identifier(value: str) -> RevisionPin:
    """Classify an extracted identifier as a commit hash or a package version."""
    if is_commit_hash(value):
        return Commit(value)
    return PackageVersion(value)


@dataclass(frozen=True)
class DependencyReference:
    """One ecosystem's resolved pin for a named package."""

    ecosystem: Ecosystem
    package_name: str
    pin: RevisionPin


@dataclass(frozen=True)
class ReconciliationResult:
    """Sole output of a reconciliation run; computed once and never persisted."""

    outcome: Outcome
    stage: str | None = None
    dimension: Dimension | None = None
    left: str | None = None
    right: str | None = None
    detail: str | None = None
    hint: str | None = None
    raw_output: str | None = None
    revisions: dict[str, str] = field(default_factory=dict)

    @classmethod
    def consistent(cls, revisions: dict[str, str]) -> "ReconciliationResult":
        return cls(outcome=Outcome.CONSISTENT, revisions=dict(revisions))

    @classmethod
    def mismatch(
        cls,
        stage: str,
        dimension: Dimension,
        left: str,
        right: str,
        revisions: dict[str, str],
    ) -> "ReconciliationResult":
        return cls(
            outcome=Outcome.MISMATCH,
            stage=stage,
            dimension=dimension,
            left=left,
            right=right,
            revisions=dict(revisions),
        )

    @property
    def is_consistent(self) -> bool:
        return self.outcome is Outcome.CONSISTENT

    def to_dict(self) -> dict[str, Any]:
        """Serialise the result to a JSON-friendly structure."""
        payload: dict[str, Any] = {"outcome": self.outcome.value}
        if self.stage:
            payload["stage"] = self.stage
        if self.dimension is not None:
            payload["dimension"] = self.dimension.value
            payload["left"] = self.left
            payload["right"] = self.right
        if self.detail:
            payload["detail"] = self.detail
        if self.hint:
            payload["hint"] = self.hint
        if self.raw_output:
            payload["raw_output"] = self.raw_output
        payload["revisions"] = dict(self.revisions)
        return payload

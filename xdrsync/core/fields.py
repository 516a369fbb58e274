"""Single-field extraction from descriptors that are not otherwise parsed."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Protocol, Union

from .errors import ExtractionFailure

# <version>-<build>.<commit>.<dist>, e.g. 19.14.1-1590.b6b730a0c.focal
_VERSION_TAIL = r".*\..*-[^.]*\.(.*)\..*"

COMPOSE_IMAGE_PATTERN = (
    r".*/(?:hcnet-core|unsafe-hcnet-core(?:-next)?):" + _VERSION_TAIL
)
WORKFLOW_PACKAGE_PATTERN = r".*DEBIAN_PKG_VERSION:" + _VERSION_TAIL

PatternLike = Union[str, "re.Pattern[str]"]


class FieldExtractor(Protocol):
    def extract(self, file_text: str, stage: str) -> str:
        ...

    def extract_file(self, path: Path, stage: str) -> str:
        ...


def extract_field(
    file_text: str, positional_pattern: PatternLike, *, stage: str = "extract-field"
) -> str:
    """Return the first capture group of the first line matching the pattern."""
    pattern = re.compile(positional_pattern)
    if pattern.groups < 1:
        raise ValueError(f"pattern has no capture group: {pattern.pattern}")
    for line in file_text.splitlines():
        match = pattern.match(line)
        if match and match.group(1):
            return match.group(1)
    raise ExtractionFailure(
        stage, f"no line matches pattern {pattern.pattern!r}"
    )


def extract_field_from_file(
    path: Path, positional_pattern: PatternLike, *, stage: str = "extract-field"
) -> str:
    if not path.is_file():
        raise ExtractionFailure(stage, f"descriptor not found at {path}")
    text = path.read_text(encoding="utf-8")
    try:
        return extract_field(text, positional_pattern, stage=stage)
    except ExtractionFailure as exc:
        raise ExtractionFailure(stage, f"{path}: {exc.detail}") from exc


class PatternFieldExtractor:
    """FieldExtractor backed by a single positional regular expression."""

    def __init__(self, pattern: PatternLike) -> None:
        self.pattern = re.compile(pattern)

    def extract(self, file_text: str, stage: str) -> str:
        return extract_field(file_text, self.pattern, stage=stage)

    def extract_file(self, path: Path, stage: str) -> str:
        return extract_field_from_file(path, self.pattern, stage=stage)

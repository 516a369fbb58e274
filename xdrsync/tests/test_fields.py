"""Tests for positional field extraction from compose and workflow descriptors."""

from __future__ import annotations

from pathlib import Path

import pytest

from xdrsync.core import ExtractionFailure, PatternFieldExtractor, extract_field
from xdrsync.core.fields import (
    COMPOSE_IMAGE_PATTERN,
    WORKFLOW_PACKAGE_PATTERN,
    extract_field_from_file,
)

from conftest import compose_text, workflow_text


@pytest.mark.parametrize(
    "image",
    [
        "hcnet/hcnet-core:19.14.1-1590.b6b730a0c.focal",
        "docker.io/hcnet/unsafe-hcnet-core:19.14.1-1590.b6b730a0c.focal",
        "hcnet/unsafe-hcnet-core-next:19.14.1-1590.b6b730a0c.jammy",
    ],
)
def test_compose_pattern_extracts_commit(image: str) -> None:
    text = f"services:\n  core:\n    image: {image}\n"

    assert extract_field(text, COMPOSE_IMAGE_PATTERN) == "b6b730a0c"


def test_workflow_pattern_extracts_commit() -> None:
    assert extract_field(workflow_text("abc123"), WORKFLOW_PACKAGE_PATTERN) == "abc123"


def test_first_matching_line_wins() -> None:
    text = compose_text("111aaa") + compose_text("222bbb")

    assert extract_field(text, COMPOSE_IMAGE_PATTERN) == "111aaa"


def test_other_images_are_ignored() -> None:
    text = "    image: postgres:9.6.17-alpine\n" + compose_text("def456")

    assert extract_field(text, COMPOSE_IMAGE_PATTERN) == "def456"


def test_no_match_fails() -> None:
    with pytest.raises(ExtractionFailure) as excinfo:
        extract_field("image: postgres:16\n", COMPOSE_IMAGE_PATTERN, stage="compose")

    assert excinfo.value.stage == "compose"


def test_pattern_without_group_is_rejected() -> None:
    with pytest.raises(ValueError):
        extract_field("anything", r".*")


def test_missing_descriptor_names_path(tmp_path: Path) -> None:
    missing = tmp_path / "docker-compose.yml"

    with pytest.raises(ExtractionFailure) as excinfo:
        extract_field_from_file(missing, COMPOSE_IMAGE_PATTERN)

    assert str(missing) in excinfo.value.detail


def test_pattern_extractor_reads_file(tmp_path: Path) -> None:
    workflow = tmp_path / "soroban-rpc.yml"
    workflow.write_text(workflow_text("def456"), encoding="utf-8")

    extractor = PatternFieldExtractor(WORKFLOW_PACKAGE_PATTERN)

    assert extractor.extract_file(workflow, "package") == "def456"

"""Revision extraction from dependency-tree listings.

Both the project's own ``cargo tree`` output and the dependency-tree transcripts
published by the server repository use the same line format::

    hcnet-xdr v20.0.0 (https://github.com/hcnet/rs-hcnet-xdr?rev=<sha>#<sha>)
    hcnet-xdr v20.0.0

A ``rev=`` annotation wins over the crate version when both are present.
"""

from __future__ import annotations

import re
from typing import List

from .errors import ExtractionFailure, PreconditionViolation
from .models import Ecosystem, PackageVersion, RevisionPin, pin_from_identifier

REV_ANNOTATION = re.compile(r"rev=([^#\s]*)#")
# <base>-<yyyymmddhhmmss>-<12 hex>, with optional +incompatible suffix
PSEUDO_VERSION = re.compile(r"[-.]\d{14}-([0-9a-f]{12})(?:\+incompatible)?$")


def _package_token(package_name: str) -> str:
    return rf"(?<![\w.-]){re.escape(package_name)}(?![\w-])"


def matching_lines(raw_text: str, package_name: str) -> List[str]:
    """Return the lines that mention ``package_name`` as a whole token."""
    token = re.compile(_package_token(package_name))
    return [line for line in raw_text.splitlines() if token.search(line)]


def extract_pin(
    ecosystem: Ecosystem,
    raw_dependency_tree_text: str,
    package_name: str,
    *,
    require_unique: bool = False,
    stage: str = "extract-pin",
) -> RevisionPin:
    """Extract the pin recorded for ``package_name`` in a dependency-tree listing.

    With ``require_unique`` the listing must mention the package exactly once;
    otherwise the first matching line is used.
    """
    lines = matching_lines(raw_dependency_tree_text, package_name)
    if not lines:
        raise ExtractionFailure(
            stage,
            f"no {ecosystem.value} dependency-tree line mentions {package_name}",
            raw_output=raw_dependency_tree_text,
        )
    if require_unique and len(lines) > 1:
        raise PreconditionViolation(
            stage,
            f"{ecosystem.value} resolved {len(lines)} entries for {package_name}",
            hint=f"Make sure a single version of {package_name} is used",
            raw_output="\n".join(lines),
        )

    line = lines[0]
    rev = REV_ANNOTATION.search(line)
    if rev and rev.group(1):
        return pin_from_identifier(rev.group(1))

    version = re.search(_package_token(package_name) + r"\s+v?(\S+)", line)
    if version is None:
        raise ExtractionFailure(
            stage,
            f"no revision or version follows {package_name} in line: {line.strip()}",
            raw_output=line,
        )
    return PackageVersion(version.group(1))


def extract_module_revision(
    raw_module_listing: str,
    module_path: str,
    *,
    stage: str = "extract-module-revision",
) -> RevisionPin:
    """Pull the revision out of a Go module version or pseudo-version.

    Only pseudo-versions are split: ``v0.0.0-20231010120000-da2cf9d7c3a5`` yields
    ``da2cf9d7c3a5``. Any other version, including pre-release tags such as
    ``v1.4.0-rc1``, is returned unchanged and will only resolve if the
    raw-content host accepts the tag as a ref.
    """
    lines = [line.strip() for line in raw_module_listing.splitlines() if line.strip()]
    if not lines:
        raise ExtractionFailure(
            stage, f"module listing for {module_path} is empty"
        )
    if len(lines) > 1:
        raise PreconditionViolation(
            stage,
            f"module listing for {module_path} returned {len(lines)} versions",
            hint=f"Make sure a single version of {module_path} is required",
            raw_output=raw_module_listing,
        )
    version = lines[0]
    pseudo = PSEUDO_VERSION.search(version)
    return pin_from_identifier(pseudo.group(1) if pseudo else version)

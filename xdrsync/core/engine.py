"""Reconciliation engine: proves every independently resolved XDR pin agrees."""

from __future__ import annotations

import logging
from typing import Dict

from ..observability import record_outcome, stage_span
from .config import XdrsyncConfig
from .errors import (
    ExtractionFailure,
    FetchFailure,
    PreconditionViolation,
    ReconciliationError,
)
from .extract import extract_module_revision, extract_pin, matching_lines
from .fetch import ContentFetcher, MarkerSource
from .fields import FieldExtractor, PatternFieldExtractor
from .models import (
    DependencyReference,
    Dimension,
    Ecosystem,
    Outcome,
    ReconciliationResult,
)
from .toolchain import Toolchain

logger = logging.getLogger("xdrsync.engine")

CHECK_SINGULAR_PACKAGES = "check-singular-packages"
RESOLVE_NATIVE_SCHEMA_PIN = "resolve-native-schema-pin"
FETCH_NATIVE_SCHEMA_REVISION = "fetch-native-schema-revision"
RESOLVE_MANAGED_RUNTIME_SCHEMA_PIN = "resolve-managed-runtime-schema-pin"
FETCH_MANAGED_RUNTIME_SCHEMA_REVISION = "fetch-managed-runtime-schema-revision"
COMPARE_SCHEMA_REVISIONS = "compare-schema-revisions"
EXTRACT_SERVER_CONTAINER_REVISION = "extract-server-container-revision"
EXTRACT_SERVER_PACKAGE_REVISION = "extract-server-package-revision"
COMPARE_SERVER_REVISIONS = "compare-server-revisions"
FETCH_SERVER_SCHEMA_PIN_TRANSCRIPT = "fetch-server-schema-pin-transcript"
COMPARE_SERVER_SCHEMA_PIN = "compare-server-schema-pin"


def _outcome_for(error: ReconciliationError) -> Outcome:
    if isinstance(error, PreconditionViolation):
        return Outcome.PRECONDITION_VIOLATION
    if isinstance(error, FetchFailure):
        return Outcome.FETCH_FAILURE
    return Outcome.EXTRACTION_FAILURE


class ReconciliationEngine:
    """Run the fixed, strictly sequential reconciliation stages once."""

    def __init__(
        self,
        config: XdrsyncConfig,
        *,
        toolchain: Toolchain | None = None,
        fetcher: ContentFetcher | None = None,
        container_extractor: FieldExtractor | None = None,
        package_extractor: FieldExtractor | None = None,
    ) -> None:
        self.config = config
        self.toolchain = toolchain or Toolchain(
            config.root, cargo=config.cargo, go=config.go
        )
        self.fetcher = fetcher or ContentFetcher(
            config.fetch.url_template,
            timeout=config.fetch.timeout,
            retries=config.fetch.retries,
            backoff=config.fetch.backoff,
        )
        self.container_extractor = container_extractor or PatternFieldExtractor(
            config.server.container.pattern
        )
        self.package_extractor = package_extractor or PatternFieldExtractor(
            config.server.package.pattern
        )

    def run(self) -> ReconciliationResult:
        revisions: Dict[str, str] = {}
        try:
            mismatch = self._reconcile(revisions)
        except ReconciliationError as exc:
            logger.info("Reconciliation failed at %s: %s", exc.stage, exc.detail)
            return ReconciliationResult(
                outcome=_outcome_for(exc),
                stage=exc.stage,
                detail=exc.detail,
                hint=exc.hint,
                raw_output=exc.raw_output,
                revisions=dict(revisions),
            )
        if mismatch is not None:
            logger.info("Reconciliation halted at %s", mismatch.stage)
            return mismatch
        logger.info("All pinned revisions agree")
        return ReconciliationResult.consistent(revisions)

    def _reconcile(self, revisions: Dict[str, str]) -> ReconciliationResult | None:
        """Run stages in order; return the first mismatch, raise on failures.

        ``revisions`` collects every value resolved so far for diagnostics.
        """
        self.check_singular_packages()

        # Both pins are resolved before any fetch.
        native_ref = self.resolve_native_schema_pin()
        revisions["native_pin"] = str(native_ref.pin)
        runtime_ref = self.resolve_managed_runtime_schema_pin()
        revisions["managed_runtime_pin"] = str(runtime_ref.pin)

        native_revision = self.fetch_native_schema_revision(native_ref)
        revisions["native_schema_revision"] = native_revision
        runtime_revision = self.fetch_managed_runtime_schema_revision(runtime_ref)
        revisions["managed_runtime_schema_revision"] = runtime_revision

        mismatch = self._compare(
            COMPARE_SCHEMA_REVISIONS,
            Dimension.SCHEMA_REVISION_DRIFT,
            native_revision,
            runtime_revision,
            revisions,
        )
        if mismatch is not None:
            return mismatch

        container_rev = self.extract_server_container_revision()
        revisions["server_container_revision"] = container_rev
        package_rev = self.extract_server_package_revision()
        revisions["server_package_revision"] = package_rev

        mismatch = self._compare(
            COMPARE_SERVER_REVISIONS,
            Dimension.SERVER_ARTIFACT_DRIFT,
            container_rev,
            package_rev,
            revisions,
        )
        if mismatch is not None:
            return mismatch

        server_ref = self.fetch_server_schema_pin(container_rev)
        revisions["server_schema_pin"] = str(server_ref.pin)

        # Pin identifiers, not fetched markers: the server records the crate pin.
        return self._compare(
            COMPARE_SERVER_SCHEMA_PIN,
            Dimension.SERVER_SCHEMA_PIN_DRIFT,
            str(native_ref.pin),
            str(server_ref.pin),
            revisions,
        )

    def _compare(
        self,
        stage: str,
        dimension: Dimension,
        left: str,
        right: str,
        revisions: Dict[str, str],
    ) -> ReconciliationResult | None:
        left, right = left.strip(), right.strip()
        with stage_span(stage, left=left, right=right) as span:
            if left == right:
                logger.info("%s: both sides at %s", stage, left)
                record_outcome(span, Outcome.CONSISTENT.value)
                return None
            record_outcome(span, Outcome.MISMATCH.value, dimension.value)
        return ReconciliationResult.mismatch(stage, dimension, left, right, revisions)

    def check_singular_packages(self) -> None:
        """Fail when Cargo resolves a precondition package at several versions."""
        for item in self.config.preconditions:
            with stage_span(CHECK_SINGULAR_PACKAGES, package=item.package) as span:
                result = self.toolchain.cargo_tree(
                    item.package, stage=CHECK_SINGULAR_PACKAGES
                )
                if result.returncode == 0:
                    record_outcome(span, Outcome.CONSISTENT.value)
                    continue
                record_outcome(span, Outcome.PRECONDITION_VIOLATION.value)
                hint = (
                    f"The project depends on multiple versions of the {item.package} "
                    "library, please unify them."
                )
                if item.imported_by:
                    imported = self.toolchain.cargo_tree(
                        item.imported_by, depth=1, stage=CHECK_SINGULAR_PACKAGES
                    )
                    lines = matching_lines(imported.stdout, item.package)
                    hint += (
                        f"\nMake sure the {item.imported_by} dependency indirectly "
                        f"points to the same {item.package} dependency imported "
                        f"explicitly.\nThis is the {item.package} version imported "
                        f"by {item.imported_by}:\n" + ("\n".join(lines) or "(none)")
                    )
                raise PreconditionViolation(
                    CHECK_SINGULAR_PACKAGES,
                    f"multiple versions of {item.package} are resolved",
                    hint=hint,
                    raw_output=result.combined,
                )

    def resolve_native_schema_pin(self) -> DependencyReference:
        package = self.config.native.package
        with stage_span(RESOLVE_NATIVE_SCHEMA_PIN, package=package) as span:
            listing = self.toolchain.native_listing(
                package, stage=RESOLVE_NATIVE_SCHEMA_PIN
            )
            pin = extract_pin(
                Ecosystem.NATIVE_COMPILED,
                listing,
                package,
                require_unique=True,
                stage=RESOLVE_NATIVE_SCHEMA_PIN,
            )
            record_outcome(span, Outcome.CONSISTENT.value, str(pin))
        logger.info("Native %s pin: %s (%s)", package, pin, pin.kind)
        return DependencyReference(Ecosystem.NATIVE_COMPILED, package, pin)

    def fetch_native_schema_revision(self, reference: DependencyReference) -> str:
        native = self.config.native
        source = MarkerSource(
            repo=native.mirror_repo,
            marker_path=native.marker_path,
            package_name=native.package,
            cache_root=native.cache_root,
        )
        with stage_span(FETCH_NATIVE_SCHEMA_REVISION, pin=reference.pin) as span:
            revision = self.fetcher.fetch_schema_revision_marker(
                reference.pin, source, stage=FETCH_NATIVE_SCHEMA_REVISION
            )
            record_outcome(span, Outcome.CONSISTENT.value, revision)
        logger.info("Native XDR revision: %s", revision)
        return revision

    def resolve_managed_runtime_schema_pin(self) -> DependencyReference:
        runtime = self.config.managed_runtime
        stage = RESOLVE_MANAGED_RUNTIME_SCHEMA_PIN
        with stage_span(stage, module=runtime.module) as span:
            listing = self.toolchain.module_listing(runtime.module, stage=stage)
            pin = extract_module_revision(listing, runtime.module, stage=stage)
            record_outcome(span, Outcome.CONSISTENT.value, str(pin))
        logger.info("Managed-runtime %s pin: %s", runtime.module, pin)
        return DependencyReference(Ecosystem.MANAGED_RUNTIME, runtime.module, pin)

    def fetch_managed_runtime_schema_revision(
        self, reference: DependencyReference
    ) -> str:
        """Read the XDR marker from the module's own source repository."""
        runtime = self.config.managed_runtime
        stage = FETCH_MANAGED_RUNTIME_SCHEMA_REVISION
        with stage_span(stage, pin=reference.pin) as span:
            text = self.fetcher.fetch_raw(
                runtime.repo, str(reference.pin), runtime.marker_path, stage=stage
            )
            revision = text.strip()
            if not revision:
                raise FetchFailure(
                    stage, f"{runtime.marker_path} at {reference.pin} is empty"
                )
            record_outcome(span, Outcome.CONSISTENT.value, revision)
        logger.info("Managed-runtime XDR revision: %s", revision)
        return revision

    def extract_server_container_revision(self) -> str:
        descriptor = self.config.server.container.descriptor
        with stage_span(EXTRACT_SERVER_CONTAINER_REVISION, descriptor=descriptor):
            revision = self.container_extractor.extract_file(
                descriptor, EXTRACT_SERVER_CONTAINER_REVISION
            )
        logger.info("Server container image commit: %s", revision)
        return revision

    def extract_server_package_revision(self) -> str:
        descriptor = self.config.server.package.descriptor
        with stage_span(EXTRACT_SERVER_PACKAGE_REVISION, descriptor=descriptor):
            revision = self.package_extractor.extract_file(
                descriptor, EXTRACT_SERVER_PACKAGE_REVISION
            )
        logger.info("Server package commit: %s", revision)
        return revision

    def fetch_server_schema_pin(self, container_revision: str) -> DependencyReference:
        """Read the server's own dependency tree at ``container_revision``."""
        server = self.config.server
        package = self.config.native.package
        stage = FETCH_SERVER_SCHEMA_PIN_TRANSCRIPT
        with stage_span(stage, revision=container_revision) as span:
            transcript = self.fetcher.fetch_raw(
                server.repo, container_revision, server.dep_tree_path, stage=stage
            )
            try:
                pin = extract_pin(
                    Ecosystem.NATIVE_COMPILED, transcript, package, stage=stage
                )
            except ExtractionFailure as exc:
                raise ExtractionFailure(
                    stage,
                    f"{server.dep_tree_path} at {container_revision}: {exc.detail}",
                ) from exc
            record_outcome(span, Outcome.CONSISTENT.value, str(pin))
        logger.info("Server %s pin at %s: %s", package, container_revision, pin)
        return DependencyReference(Ecosystem.NATIVE_COMPILED, package, pin)

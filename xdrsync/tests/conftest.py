"""Shared fixtures: a canned project checkout, command runner and raw-content host."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import pytest

from xdrsync.core import (
    CommandResult,
    ContentFetcher,
    FetchFailure,
    ReconciliationEngine,
    Toolchain,
    XdrsyncConfig,
    load_config,
)

RS_XDR_COMMIT = "0123456789abcdef0123456789abcdef01234567"
XDR_REVISION = "e372df9f677961aac04c5a4cc80a3667f310b29f"
GO_PSEUDO_VERSION = "v0.0.0-20231010120000-da2cf9d7c3a5"
GO_REVISION = "da2cf9d7c3a5"
CORE_COMMIT = "617729910"

RAW = "https://raw.githubusercontent.com"
NATIVE_MARKER_URL = f"{RAW}/hcnet/rs-hcnet-xdr/{RS_XDR_COMMIT}/xdr/curr-version"
GO_MARKER_URL = f"{RAW}/hcnet/go/{GO_REVISION}/xdr/xdr_commit_generated.txt"
CORE_TREE_URL = (
    f"{RAW}/hcnet/hcnet-core/{CORE_COMMIT}/src/rust/src/host-dep-tree-curr.txt"
)


def native_tree_line(commit: str = RS_XDR_COMMIT) -> str:
    return (
        f"hcnet-xdr v20.0.0 (https://github.com/hcnet/rs-hcnet-xdr?rev={commit}#{commit})"
    )


def core_dep_tree(commit: str = RS_XDR_COMMIT) -> str:
    return "\n".join(
        [
            "soroban-env-host v20.0.0 (https://github.com/hcnet/rs-soroban-env?rev=8c63bff#8c63bff)",
            "├── hcnet-strkey v0.0.8",
            "├── soroban-env-common v20.0.0",
            f"│   ├── {native_tree_line(commit)}",
            "│   │   ├── base64 v0.13.1",
            "│   │   └── hcnet-strkey v0.0.8 (*)",
            f"└── {native_tree_line(commit)} (*)",
            "",
        ]
    )


def compose_text(commit: str = CORE_COMMIT) -> str:
    return (
        "services:\n"
        "  core:\n"
        f"    image: docker.io/hcnet/unsafe-hcnet-core:20.0.0-1615.{commit}.focal\n"
        "    depends_on:\n"
        "      - core-postgres\n"
    )


def workflow_text(commit: str = CORE_COMMIT) -> str:
    return (
        "jobs:\n"
        "  integration:\n"
        "    env:\n"
        "      HCNET_RPC_INTEGRATION_TESTS_ENABLED: true\n"
        f"      DEBIAN_PKG_VERSION: 20.0.0-1615.{commit}.focal\n"
    )


class FakeRunner:
    """Stand-in for subprocess: maps argument vectors to canned results."""

    def __init__(self, results: Dict[Tuple[str, ...], CommandResult]) -> None:
        self.results = dict(results)
        self.calls: List[Tuple[str, ...]] = []

    def __call__(self, args: Sequence[str], cwd: Path) -> CommandResult:
        key = tuple(args)
        self.calls.append(key)
        if key not in self.results:
            raise AssertionError(f"unexpected command: {' '.join(key)}")
        return self.results[key]


class FakeFetcher(ContentFetcher):
    """ContentFetcher whose HTTP layer serves a fixed page table (404 otherwise)."""

    def __init__(self, pages: Dict[str, str]) -> None:
        super().__init__(retries=0, backoff=0)
        self.pages = dict(pages)
        self.requested: List[str] = []

    def _http_get(self, url: str, stage: str) -> bytes:
        self.requested.append(url)
        if url not in self.pages:
            raise FetchFailure(stage, f"GET {url} returned HTTP 404")
        return self.pages[url].encode("utf-8")


def default_commands() -> Dict[Tuple[str, ...], CommandResult]:
    return {
        ("cargo", "tree", "-p", "soroban-env-host"): CommandResult(
            0, "soroban-env-host v20.0.0\n"
        ),
        ("cargo", "tree", "--depth", "0", "-p", "hcnet-xdr"): CommandResult(
            0, native_tree_line() + "\n"
        ),
        ("go", "list", "-m", "-f", "{{.Version}}", "github.com/hcnet/go"): CommandResult(
            0, GO_PSEUDO_VERSION + "\n"
        ),
    }


def default_pages() -> Dict[str, str]:
    return {
        NATIVE_MARKER_URL: XDR_REVISION + "\n",
        GO_MARKER_URL: XDR_REVISION + "\n",
        CORE_TREE_URL: core_dep_tree(),
    }


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in ("XDRSYNC_CONFIG", "XDRSYNC_RAW_URL", "XDRSYNC_HTTP_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CARGO_HOME", str(tmp_path / "cargo-home"))
    monkeypatch.setenv("XDRSYNC_DISABLE_TRACING", "1")


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    compose = root / "cmd" / "soroban-rpc" / "internal" / "test" / "docker-compose.yml"
    workflow = root / ".github" / "workflows" / "soroban-rpc.yml"
    compose.parent.mkdir(parents=True)
    workflow.parent.mkdir(parents=True)
    compose.write_text(compose_text(), encoding="utf-8")
    workflow.write_text(workflow_text(), encoding="utf-8")
    return root


@pytest.fixture
def config(project: Path) -> XdrsyncConfig:
    return load_config(root=project)


def make_engine(
    config: XdrsyncConfig,
    commands: Dict[Tuple[str, ...], CommandResult] | None = None,
    pages: Dict[str, str] | None = None,
) -> Tuple[ReconciliationEngine, FakeRunner, FakeFetcher]:
    runner = FakeRunner(default_commands() if commands is None else commands)
    fetcher = FakeFetcher(default_pages() if pages is None else pages)
    engine = ReconciliationEngine(
        config,
        toolchain=Toolchain(config.root, runner),
        fetcher=fetcher,
    )
    return engine, runner, fetcher

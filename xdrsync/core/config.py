"""Configuration loading and validation for xdrsync."""

from __future__ import annotations

import copy
import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml  # type: ignore[import-not-found]
from jsonschema import Draft202012Validator  # type: ignore[import-not-found]
from jsonschema.exceptions import ValidationError  # type: ignore[import-not-found]

from .errors import ConfigError
from .fetch import cargo_registry_cache_root
from .fields import COMPOSE_IMAGE_PATTERN, WORKFLOW_PACKAGE_PATTERN

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_SCHEMA = PACKAGE_ROOT / "schemas" / "config.schema.json"
DEFAULT_CONFIG = PACKAGE_ROOT / "defaults.yaml"
PROJECT_CONFIG_NAME = "xdrsync.yaml"
URL_TEMPLATE_PATTERN = re.compile(r"\{repo\}.*\{revision\}.*\{path\}")


@dataclass(frozen=True)
class NativeConfig:
    package: str
    mirror_repo: str
    marker_path: str
    cache_root: Path | None = None


@dataclass(frozen=True)
class ManagedRuntimeConfig:
    module: str
    repo: str
    marker_path: str


@dataclass(frozen=True)
class DescriptorConfig:
    """A descriptor file and the positional pattern that pins the server."""

    descriptor: Path
    pattern: str


@dataclass(frozen=True)
class ServerConfig:
    repo: str
    dep_tree_path: str
    container: DescriptorConfig
    package: DescriptorConfig


@dataclass(frozen=True)
class PreconditionConfig:
    package: str
    imported_by: str | None = None


@dataclass(frozen=True)
class FetchConfig:
    url_template: str
    timeout: float = 30.0
    retries: int = 1
    backoff: float = 2.0


@dataclass(frozen=True)
class XdrsyncConfig:
    root: Path
    native: NativeConfig
    managed_runtime: ManagedRuntimeConfig
    server: ServerConfig
    fetch: FetchConfig
    preconditions: tuple[PreconditionConfig, ...] = ()
    cargo: str = "cargo"
    go: str = "go"
    source: Path | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Serialise the effective configuration (paths rendered as strings)."""
        return {
            "root": str(self.root),
            "native": {
                "package": self.native.package,
                "mirror_repo": self.native.mirror_repo,
                "marker_path": self.native.marker_path,
                "cache_root": str(self.native.cache_root)
                if self.native.cache_root
                else None,
            },
            "managed_runtime": {
                "module": self.managed_runtime.module,
                "repo": self.managed_runtime.repo,
                "marker_path": self.managed_runtime.marker_path,
            },
            "server": {
                "repo": self.server.repo,
                "dep_tree_path": self.server.dep_tree_path,
                "container": {
                    "descriptor": str(self.server.container.descriptor),
                    "pattern": self.server.container.pattern,
                },
                "package": {
                    "descriptor": str(self.server.package.descriptor),
                    "pattern": self.server.package.pattern,
                },
            },
            "preconditions": [
                {"package": item.package, "imported_by": item.imported_by}
                for item in self.preconditions
            ],
            "fetch": {
                "url_template": self.fetch.url_template,
                "timeout": self.fetch.timeout,
                "retries": self.fetch.retries,
                "backoff": self.fetch.backoff,
            },
            "tools": {"cargo": self.cargo, "go": self.go},
        }


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Configuration file missing at {path}.")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level.")
    return data


def merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge ``override`` into a copy of ``base``; lists are replaced."""
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class ConfigValidator:
    """Validate raw configuration payloads against the bundled JSON Schema."""

    def __init__(self, schema_path: Path | None = None) -> None:
        self.schema_path = schema_path or DEFAULT_SCHEMA
        if not self.schema_path.exists():
            raise ConfigError(f"Config schema missing at {self.schema_path}.")
        schema = json.loads(self.schema_path.read_text(encoding="utf-8"))
        self.validator = Draft202012Validator(schema)

    def collect_errors(self, payload: dict[str, Any]) -> list[str]:
        return list(self._iter_error_messages(payload))

    def validate(self, payload: dict[str, Any]) -> None:
        errors = self.collect_errors(payload)
        if errors:
            raise ConfigError("\n".join(errors))

    def _iter_error_messages(self, payload: dict[str, Any]) -> Iterable[str]:
        for error in self.validator.iter_errors(payload):
            path = ".".join(str(idx) for idx in error.path) or "config"
            if isinstance(error, ValidationError):
                yield f"{path}: {error.message}"
            else:
                yield f"{path}: {error}"


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc
    if parsed <= 0:
        raise ConfigError(f"{name} must be positive, got {value!r}")
    return parsed


def _url_template(value: str, origin: str) -> str:
    """Reject templates that ``str.format(repo=, revision=, path=)`` cannot fill."""
    if not URL_TEMPLATE_PATTERN.search(value):
        raise ConfigError(
            f"{origin} must contain {{repo}}, {{revision}} and {{path}} in order, "
            f"got {value!r}"
        )
    try:
        value.format(repo="owner/repo", revision="0" * 40, path="file")
    except (KeyError, IndexError, ValueError) as exc:
        raise ConfigError(f"{origin} is not a usable URL template: {exc!r}") from exc
    return value


def _descriptor(root: Path, data: Mapping[str, Any], pattern: str) -> DescriptorConfig:
    value = str(data.get("pattern") or pattern)
    try:
        compiled = re.compile(value)
    except re.error as exc:
        raise ConfigError(
            f"{data['descriptor']}: invalid pattern {value!r}: {exc}"
        ) from exc
    if compiled.groups < 1:
        raise ConfigError(
            f"{data['descriptor']}: pattern {value!r} needs a capture group"
        )
    return DescriptorConfig(descriptor=root / str(data["descriptor"]), pattern=value)


def build_config(
    payload: Mapping[str, Any], root: Path, *, source: Path | None = None
) -> XdrsyncConfig:
    """Turn a validated payload into frozen config objects, applying env overrides."""
    native = payload["native"]
    runtime = payload["managed_runtime"]
    server = payload["server"]
    fetch = payload["fetch"]
    tools = payload.get("tools") or {}

    cache_root = (
        root / native["cache_root"]
        if native.get("cache_root")
        else cargo_registry_cache_root()
    )
    return XdrsyncConfig(
        root=root,
        native=NativeConfig(
            package=native["package"],
            mirror_repo=native["mirror_repo"],
            marker_path=native["marker_path"],
            cache_root=cache_root,
        ),
        managed_runtime=ManagedRuntimeConfig(
            module=runtime["module"],
            repo=runtime["repo"],
            marker_path=runtime["marker_path"],
        ),
        server=ServerConfig(
            repo=server["repo"],
            dep_tree_path=server["dep_tree_path"],
            container=_descriptor(root, server["container"], COMPOSE_IMAGE_PATTERN),
            package=_descriptor(root, server["package"], WORKFLOW_PACKAGE_PATTERN),
        ),
        fetch=FetchConfig(
            url_template=_url_template(
                os.environ.get("XDRSYNC_RAW_URL") or fetch["url_template"],
                "XDRSYNC_RAW_URL"
                if os.environ.get("XDRSYNC_RAW_URL")
                else "fetch.url_template",
            ),
            timeout=_env_float("XDRSYNC_HTTP_TIMEOUT", float(fetch.get("timeout", 30))),
            retries=int(fetch.get("retries", 1)),
            backoff=float(fetch.get("backoff", 2)),
        ),
        preconditions=tuple(
            PreconditionConfig(
                package=item["package"], imported_by=item.get("imported_by")
            )
            for item in payload.get("preconditions") or []
        ),
        cargo=str(tools.get("cargo", "cargo")),
        go=str(tools.get("go", "go")),
        source=source,
    )


def load_config(
    config_path: Path | None = None,
    root: Path | None = None,
    *,
    validator: ConfigValidator | None = None,
) -> XdrsyncConfig:
    """Load defaults, merge the project file on top, validate and build.

    The project file is ``config_path``, else ``$XDRSYNC_CONFIG``, else
    ``<root>/xdrsync.yaml`` when it exists.
    """
    project_root = (root or Path.cwd()).resolve()
    payload = _read_yaml(DEFAULT_CONFIG)

    source = config_path
    if source is None and os.environ.get("XDRSYNC_CONFIG"):
        source = Path(os.environ["XDRSYNC_CONFIG"]).expanduser()
    if source is None and (project_root / PROJECT_CONFIG_NAME).exists():
        source = project_root / PROJECT_CONFIG_NAME
    if source is not None:
        payload = merge(payload, _read_yaml(source))

    (validator or ConfigValidator()).validate(payload)
    return build_config(payload, project_root, source=source)

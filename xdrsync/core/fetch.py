"""Remote and cached retrieval of revision marker files."""

from __future__ import annotations

import http.client
import logging
import os
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path

from .errors import FetchFailure
from .models import Commit, PackageVersion, RevisionPin

logger = logging.getLogger("xdrsync.fetch")

DEFAULT_URL_TEMPLATE = "https://raw.githubusercontent.com/{repo}/{revision}/{path}"
HEADERS = {"User-Agent": "xdrsync/0.1"}


@dataclass(frozen=True)
class MarkerSource:
    """Where a pin's schema revision marker lives."""

    repo: str
    marker_path: str
    package_name: str
    cache_root: Path | None = None


def cargo_registry_cache_root(cargo_home: str | None = None) -> Path | None:
    """Locate ``$CARGO_HOME/registry/src/index*`` (first match, sorted)."""
    home = Path(
        cargo_home or os.environ.get("CARGO_HOME") or Path.home() / ".cargo"
    ).expanduser()
    candidates = sorted((home / "registry" / "src").glob("index*"))
    if not candidates:
        return None
    return candidates[0].resolve()


class ContentFetcher:
    """Fetch literal file contents at a revision; no caching between calls."""

    def __init__(
        self,
        url_template: str = DEFAULT_URL_TEMPLATE,
        *,
        timeout: float = 30.0,
        retries: int = 1,
        backoff: float = 2.0,
    ) -> None:
        self.url_template = url_template
        self.timeout = timeout
        self.retries = retries
        self.backoff = backoff

    def url_for(self, repo: str, revision: str, path: str) -> str:
        return self.url_template.format(
            repo=repo.strip("/"), revision=revision, path=path.lstrip("/")
        )

    def _http_get(self, url: str, stage: str) -> bytes:
        request = urllib.request.Request(url, headers=HEADERS)
        attempt = 0
        while True:
            attempt += 1
            try:
                with urllib.request.urlopen(  # noqa: S310
                    request, timeout=self.timeout
                ) as response:
                    return response.read()
            except urllib.error.HTTPError as exc:
                body = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
                if exc.code < 500 or attempt > self.retries:
                    raise FetchFailure(
                        stage,
                        f"GET {url} returned HTTP {exc.code}",
                        raw_output=body or None,
                    ) from exc
                logger.warning("GET %s returned HTTP %s; retrying", url, exc.code)
            except (urllib.error.URLError, http.client.HTTPException, OSError) as exc:
                if attempt > self.retries:
                    raise FetchFailure(stage, f"GET {url} failed: {exc}") from exc
                logger.warning("GET %s failed (%s); retrying", url, exc)
            time.sleep(self.backoff * attempt)

    def fetch_raw(
        self, repo: str, revision: str, path: str, *, stage: str = "fetch-raw"
    ) -> str:
        """Return the text of ``path`` in ``repo`` at ``revision``."""
        url = self.url_for(repo, revision, path)
        logger.debug("Fetching %s", url)
        payload = self._http_get(url, stage)
        try:
            return payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FetchFailure(stage, f"{url} is not valid UTF-8") from exc

    def read_cached(
        self, source: MarkerSource, version: str, *, stage: str = "read-cache"
    ) -> str:
        if source.cache_root is None:
            raise FetchFailure(
                stage,
                f"no package cache available to resolve {source.package_name} {version}",
            )
        path = (
            source.cache_root / f"{source.package_name}-{version}" / source.marker_path
        )
        if not path.is_file():
            raise FetchFailure(stage, f"marker file not found at {path}")
        logger.debug("Reading cached marker %s", path)
        return path.read_text(encoding="utf-8")

    def fetch_schema_revision_marker(
        self, pin: RevisionPin, source: MarkerSource, *, stage: str = "fetch-marker"
    ) -> str:
        """Resolve a pin to the schema revision recorded in its marker file."""
        if isinstance(pin, Commit):
            text = self.fetch_raw(source.repo, pin.hash, source.marker_path, stage=stage)
        elif isinstance(pin, PackageVersion):
            text = self.read_cached(source, pin.version, stage=stage)
        else:  # pragma: no cover - exhaustive over RevisionPin
            raise TypeError(f"unsupported pin type: {type(pin).__name__}")
        revision = text.strip()
        if not revision:
            raise FetchFailure(stage, f"marker for {pin} is empty")
        return revision

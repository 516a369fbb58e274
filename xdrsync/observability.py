"""Optional tracing helpers for reconciliation stages."""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Any, Final, Iterator

try:
    from opentelemetry import trace
except Exception:  # pragma: no cover - optional dependency
    trace = None

_TRACER_NAME: Final[str] = "xdrsync.engine"


def _as_bool(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def tracing_enabled() -> bool:
    return trace is not None and not _as_bool(os.environ.get("XDRSYNC_DISABLE_TRACING"))


@contextmanager
def stage_span(stage: str, **attributes: Any) -> Iterator[Any]:
    """Run a reconciliation stage inside a span when tracing is available.

    Yields the span, or ``None`` when tracing is disabled.
    """
    if not tracing_enabled():
        yield None
        return
    tracer = trace.get_tracer(_TRACER_NAME)
    with tracer.start_as_current_span("xdrsync.stage") as span:
        span.set_attribute("xdrsync.stage", stage)
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(f"xdrsync.{key}", str(value))
        yield span


def record_outcome(span: Any, outcome: str, detail: str | None = None) -> None:
    if span is None:
        return
    span.set_attribute("xdrsync.outcome", outcome)
    if detail:
        span.set_attribute("xdrsync.detail", detail)

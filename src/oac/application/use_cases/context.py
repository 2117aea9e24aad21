from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class TraceContext:
    """Correlation ids stamped onto every event a use case publishes."""

    trace_id: str | None
    request_id: str | None

    @classmethod
    def background(cls) -> TraceContext:
        return cls(trace_id=None, request_id=None)

    @classmethod
    def for_job(cls, job: str) -> TraceContext:
        return cls(trace_id=None, request_id=f"{job}-{uuid4().hex[:12]}")

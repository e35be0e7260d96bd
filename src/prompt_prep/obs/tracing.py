"""Step-trace sink and request timing."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from prompt_prep.types import ProcessingContext, StepLog


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    raw_input: str
    language: str
    intent: str
    cache_hit: bool
    common_response: bool
    match_count: int
    steps: list[StepLog]
    latency_ms: float


class TraceStore:
    """In-memory sink for per-request step traces.

    The pipeline only writes here; reading is left to the API and to tests.
    """

    def __init__(self, *, max_records: int = 1000) -> None:
        self._records: dict[str, TraceRecord] = {}
        self._max_records = max_records

    def create_record(self, ctx: ProcessingContext, *, latency_ms: float) -> TraceRecord:
        trace_id = str(uuid.uuid4())
        record = TraceRecord(
            trace_id=trace_id,
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            raw_input=ctx.raw_input,
            language=ctx.language.iso_code,
            intent=ctx.intent,
            cache_hit=ctx.cache_hit,
            common_response=ctx.common_response,
            match_count=len(ctx.kb_matches),
            steps=list(ctx.steps),
            latency_ms=latency_ms,
        )
        self._records[trace_id] = record
        while len(self._records) > self._max_records:
            self._records.pop(next(iter(self._records)))
        return record

    def get(self, trace_id: str) -> TraceRecord:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def summary(self) -> dict[str, float | int]:
        """Aggregate request counts and latency for the health endpoint."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "cache_hit_rate": 0.0,
                "common_response_rate": 0.0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        return {
            "total_requests": total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "cache_hit_rate": sum(1 for r in records if r.cache_hit) / total,
            "common_response_rate": sum(1 for r in records if r.common_response) / total,
        }


class Timer:
    """Simple context timer used by the pipeline driver."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0

"""Prometheus metrics for the commerce automation engine.

Provides:
- HTTP request metrics (count, duration, status breakdown)
- Ingestion, execution, action and channel counters
- Failure counters: every failure path in the engine increments one

Exposes a plain-text /metrics endpoint compatible with any Prometheus scraper.
"""

import time
import threading
from collections import defaultdict
from typing import Optional

from fastapi import APIRouter, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Counter names used across the engine
EVENTS_RECEIVED = "automation_events_received_total"
EVENTS_DUPLICATE = "automation_events_duplicate_total"
EVENTS_UNHANDLED = "automation_events_unhandled_total"
INGEST_FAILURES = "automation_ingest_failures_total"
EXECUTIONS_STARTED = "automation_executions_started_total"
EXECUTIONS_FINISHED = "automation_executions_finished_total"
EXECUTION_FAILURES = "automation_execution_failures_total"
ACTIONS_EXECUTED = "automation_actions_executed_total"
ACTION_FAILURES = "automation_action_failures_total"
ACTIONS_SKIPPED = "automation_actions_skipped_total"
ACTION_DURATION = "automation_action_duration_seconds"
CHANNEL_FAILURES = "automation_channel_failures_total"
CHANNEL_RETRIES = "automation_channel_retries_total"
CIRCUIT_REJECTIONS = "automation_circuit_rejections_total"
CIRCUIT_STATE = "automation_circuit_state"
CAMPAIGN_SENDS = "automation_campaign_sends_total"
CAMPAIGN_FAILURES = "automation_campaign_send_failures_total"

# ---------------------------------------------------------------------------
# In-process metric store
# ---------------------------------------------------------------------------

_lock = threading.Lock()

_counters: dict[str, float] = defaultdict(float)
_gauges: dict[str, float] = defaultdict(float)
_histograms: dict[str, list[float]] = defaultdict(list)
_start_time = time.time()


def inc(name: str, value: float = 1.0, labels: Optional[dict] = None) -> None:
    key = _label_key(name, labels)
    with _lock:
        _counters[key] += value


def gauge_set(name: str, value: float, labels: Optional[dict] = None) -> None:
    key = _label_key(name, labels)
    with _lock:
        _gauges[key] = value


def observe(name: str, value: float, labels: Optional[dict] = None) -> None:
    key = _label_key(name, labels)
    with _lock:
        _histograms[key].append(value)
        # Keep only last 10k observations to bound memory
        if len(_histograms[key]) > 10_000:
            _histograms[key] = _histograms[key][-5_000:]


def get_counter(name: str, labels: Optional[dict] = None) -> float:
    with _lock:
        return _counters.get(_label_key(name, labels), 0.0)


def reset() -> None:
    """Drop all recorded values (tests, process re-forks)."""
    with _lock:
        _counters.clear()
        _gauges.clear()
        _histograms.clear()


def _label_key(name: str, labels: Optional[dict] = None) -> str:
    if not labels:
        return name
    label_str = ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))
    return f"{name}{{{label_str}}}"


# ---------------------------------------------------------------------------
# Exposition format generator
# ---------------------------------------------------------------------------

def _render_family(lines: list[str], values: dict, kind: str) -> None:
    seen_names: set[str] = set()
    for key, val in sorted(values.items()):
        base_name = key.split("{")[0]
        if base_name not in seen_names:
            lines.append(f"# TYPE {base_name} {kind}")
            seen_names.add(base_name)
        lines.append(f"{key} {val}")
    lines.append("")


def generate_metrics() -> str:
    """Generate Prometheus exposition format text."""
    lines: list[str] = [
        "# HELP automation_uptime_seconds Time since process start.",
        "# TYPE automation_uptime_seconds gauge",
        f"automation_uptime_seconds {time.time() - _start_time:.1f}",
        "",
    ]

    with _lock:
        if _counters:
            _render_family(lines, _counters, "counter")
        if _gauges:
            _render_family(lines, _gauges, "gauge")

        # Summaries: sum and count only
        if _histograms:
            seen_names: set[str] = set()
            for key, values in sorted(_histograms.items()):
                base_name = key.split("{")[0]
                if base_name not in seen_names:
                    lines.append(f"# TYPE {base_name} summary")
                    seen_names.add(base_name)
                if values:
                    lines.append(f"{key}_count {len(values)}")
                    lines.append(f"{key}_sum {sum(values):.4f}")
            lines.append("")

    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Metrics middleware
# ---------------------------------------------------------------------------

class MetricsMiddleware(BaseHTTPMiddleware):
    """Track HTTP request count and duration per method/path/status."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        labels = {
            "method": request.method,
            "path": request.url.path,
            "status": str(response.status_code),
        }
        inc("automation_http_requests_total", labels=labels)
        observe("automation_http_request_duration_seconds", duration, labels=labels)

        return response


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

metrics_router = APIRouter()


@metrics_router.get("/metrics")
async def prometheus_metrics():
    """Prometheus-compatible metrics endpoint."""
    return Response(
        content=generate_metrics(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )

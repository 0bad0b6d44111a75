"""Prometheus counters for the streaming client."""

from prometheus_client import CollectorRegistry, Counter, generate_latest

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

DELTAS_RENDERED = Counter("deltas_rendered_total", "Content deltas rendered", registry=CUSTOM_REGISTRY)
FRAMES_DROPPED = Counter("frames_dropped_total", "Malformed frames dropped", registry=CUSTOM_REGISTRY)
SESSIONS_FAILED = Counter("sessions_failed_total", "Streaming sessions that failed", registry=CUSTOM_REGISTRY)
COMMITS_DROPPED = Counter(
    "commits_dropped_total", "Replies not committed because the conversation was gone",
    registry=CUSTOM_REGISTRY,
)
PERSIST_FAILURES = Counter("persist_failures_total", "Ledger writes that failed", registry=CUSTOM_REGISTRY)


def render_metrics() -> str:
    """Text exposition of every counter."""
    return generate_latest(CUSTOM_REGISTRY).decode("utf-8")

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


provider_requests_total = Counter(
    "provider_requests_total",
    "Total number of outbound provider calls.",
    ["provider", "endpoint", "outcome"],
)

provider_request_duration_seconds = Histogram(
    "provider_request_duration_seconds",
    "Outbound provider call duration in seconds, retries included.",
    ["provider", "endpoint"],
)

provider_retries_total = Counter(
    "provider_retries_total",
    "Number of retried provider attempts.",
    ["provider", "reason_code"],
)

provider_rate_limit_rejections_total = Counter(
    "provider_rate_limit_rejections_total",
    "Calls rejected by the provider rate limiter.",
    ["provider", "period"],
)

provider_status = Gauge(
    "provider_status",
    "Current provider status (1 for the active state label).",
    ["provider", "status"],
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST

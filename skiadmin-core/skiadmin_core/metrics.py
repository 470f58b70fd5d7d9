"""
Prometheus Metrics
==================
Counters for token and one-time-code verification outcomes.
"""

from prometheus_client import (
    CollectorRegistry,
    Counter,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# Custom registry so the host application decides where to expose it
AUTH_REGISTRY = CollectorRegistry()

TOKEN_VERIFICATIONS = Counter(
    name="setup_token_verifications_total",
    documentation="Setup token verifications by outcome",
    labelnames=["outcome"],
    registry=AUTH_REGISTRY,
)

TOKENS_CONSUMED = Counter(
    name="setup_tokens_consumed_total",
    documentation="Setup tokens burned by the replay guard",
    labelnames=["token_type"],
    registry=AUTH_REGISTRY,
)

OTP_ISSUED = Counter(
    name="otp_codes_issued_total",
    documentation="One-time codes generated",
    labelnames=["purpose"],
    registry=AUTH_REGISTRY,
)

OTP_VERIFICATIONS = Counter(
    name="otp_verifications_total",
    documentation="One-time code verifications by purpose and outcome",
    labelnames=["purpose", "outcome"],
    registry=AUTH_REGISTRY,
)

LOCKOUTS = Counter(
    name="failed_attempt_lockouts_total",
    documentation="Requests rejected by the failed-attempt limiter",
    registry=AUTH_REGISTRY,
)


def get_metrics_text() -> bytes:
    """Render the registry in Prometheus exposition format."""
    return generate_latest(AUTH_REGISTRY)


__all__ = [
    "AUTH_REGISTRY",
    "TOKEN_VERIFICATIONS",
    "TOKENS_CONSUMED",
    "OTP_ISSUED",
    "OTP_VERIFICATIONS",
    "LOCKOUTS",
    "get_metrics_text",
    "CONTENT_TYPE_LATEST",
]

"""Prometheus metrics middleware and auction-specific metrics."""
import time
from typing import Callable

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


# =============================================================================
# Prometheus Metrics Definitions
# =============================================================================

# Request metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_requests_active",
    "Number of active HTTP requests",
)

# Bid-specific metrics
BID_COUNTER = Counter(
    "bids_total",
    "Total bid attempts",
    ["status"],  # success, failed, conflict, error
)

BID_REJECTIONS = Counter(
    "bid_rejections_total",
    "Rejected bids by reason",
    ["code"],
)

BID_LATENCY = Histogram(
    "bid_latency_seconds",
    "Bid processing latency in seconds",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

# Sweeper metrics
AUCTIONS_CLOSED = Counter(
    "auctions_closed_total",
    "Auctions finalized by the expiry sweeper",
    ["outcome"],  # sold, public_sale
)

SETTLEMENT_DECLINED = Counter(
    "settlements_declined_total",
    "Exclusive sales that fell back to public sale",
    ["reason"],
)

SWEEP_FAILURES = Counter(
    "sweep_failures_total",
    "Posts whose sweep attempt hit an infrastructure error",
)

SWEEP_DURATION = Histogram(
    "sweep_duration_seconds",
    "Expiry sweep duration in seconds",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


# =============================================================================
# Metrics Middleware
# =============================================================================

class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics for all HTTP requests."""

    # Endpoints to normalize for metrics (reduce cardinality)
    ENDPOINT_PATTERNS = {
        "/api/v1/bids": "/api/v1/bids",
        "/api/v1/auctions/sweep": "/api/v1/auctions/sweep",
        "/api/v1/auctions": "/api/v1/auctions",
        "/api/v1/grants": "/api/v1/grants",
        "/api/v1/buyers": "/api/v1/buyers",
        "/api/v1/submitters": "/api/v1/submitters",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.inc()
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            status_code = 500
            raise
        finally:
            ACTIVE_REQUESTS.dec()
            latency = time.perf_counter() - start_time

            endpoint = self._normalize_endpoint(request.url.path)

            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status=status_code,
            ).inc()

            REQUEST_LATENCY.labels(
                method=request.method,
                endpoint=endpoint,
            ).observe(latency)

            if endpoint == "/api/v1/bids" and request.method == "POST":
                BID_LATENCY.observe(latency)
                if status_code in (200, 201):
                    BID_COUNTER.labels(status="success").inc()
                elif status_code == 409:
                    BID_COUNTER.labels(status="conflict").inc()
                elif status_code >= 500:
                    BID_COUNTER.labels(status="error").inc()
                else:
                    BID_COUNTER.labels(status="failed").inc()

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce metric cardinality."""
        for pattern, normalized in self.ENDPOINT_PATTERNS.items():
            if path.startswith(pattern):
                return normalized

        if path.startswith("/ws/"):
            return "/ws"

        if path in ("/health", "/metrics"):
            return path

        return "/other"


# =============================================================================
# Metrics Endpoint
# =============================================================================

async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics scrape endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# =============================================================================
# Helper Functions for Manual Metric Recording
# =============================================================================

def record_bid_rejection(code: str) -> None:
    BID_REJECTIONS.labels(code=code).inc()


def record_auction_closed(outcome: str, reason: str | None = None) -> None:
    """Record a finalized auction, plus the decline reason for failed sales."""
    AUCTIONS_CLOSED.labels(outcome=outcome).inc()
    if reason is not None:
        SETTLEMENT_DECLINED.labels(reason=reason).inc()


def record_sweep(duration: float, failed: int) -> None:
    SWEEP_DURATION.observe(duration)
    if failed:
        SWEEP_FAILURES.inc(failed)

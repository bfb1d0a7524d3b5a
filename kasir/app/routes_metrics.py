# routes_metrics.py

"""Prometheus metrics and /metrics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Counters
http_requests_total = Counter(
    "http_requests_total", "Total HTTP requests", ["path", "method", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency by route template",
    ["path", "method"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

orders_created_total = Counter(
    "orders_created_total", "Total orders created", ["method"]
)
orders_created_total.labels(method="cash").inc(0)
orders_created_total.labels(method="qris").inc(0)

payment_reconciliations_total = Counter(
    "payment_reconciliations_total",
    "Gateway status merges by source and outcome",
    ["source", "outcome"],
)
payment_reconciliations_total.labels(source="webhook", outcome="applied").inc(0)

webhook_rejected_total = Counter(
    "webhook_rejected_total", "Gateway notifications not applied", ["reason"]
)
webhook_rejected_total.labels(reason="signature").inc(0)

stock_deductions_total = Counter(
    "stock_deductions_total", "Ingredient deduction attempts", ["outcome"]
)
stock_deductions_total.labels(outcome="deducted").inc(0)
stock_deductions_total.labels(outcome="failed").inc(0)

idempotency_hits_total = Counter(
    "idempotency_hits_total", "Total responses replayed from the idempotency cache"
)
idempotency_hits_total.inc(0)

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

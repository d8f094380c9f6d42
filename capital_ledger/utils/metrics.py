"""Prometheus metrics for the payable ledger and its HTTP API."""
import os
import time

from flask import g, request
from prometheus_client import Counter, Histogram, CollectorRegistry, REGISTRY
from prometheus_client import multiprocess

# Gunicorn workers share samples through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    _metric_registry = None
else:
    registry = REGISTRY
    _metric_registry = registry

ledger_operations_total = Counter(
    'ledger_operations_total',
    'Payments and debts recorded in the payable ledger',
    ['kind'],
    registry=_metric_registry
)

ledger_allocated_amount_total = Counter(
    'ledger_allocated_amount_total',
    'Amount matched between payments and entries, in minor currency units',
    ['kind'],
    registry=_metric_registry
)

api_requests_total = Counter(
    'http_requests_total',
    'Payables API requests by endpoint and status',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

api_request_seconds = Histogram(
    'http_request_duration_seconds',
    'Payables API request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)


def record_allocations(kind: str, allocated: int) -> None:
    """Count one ledger operation of `kind` ('payment' or 'debt') and the amount it matched."""
    ledger_operations_total.labels(kind=kind).inc()
    if allocated > 0:
        ledger_allocated_amount_total.labels(kind=kind).inc(allocated)


def setup_metrics_instrumentation(app):
    """Time every request and count it by endpoint and status code."""

    @app.before_request
    def start_request_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def observe_request(response):
        started = g.pop('request_started', None)
        if started is None:
            return response
        endpoint = request.endpoint or 'unknown'
        try:
            api_request_seconds.labels(request.method, endpoint).observe(time.perf_counter() - started)
            api_requests_total.labels(request.method, endpoint, response.status_code).inc()
        except ValueError as e:
            app.logger.warning(f"Failed to record request metrics: {e}")
        return response

"""
Metrics blueprint for the POS engine.

Serves /metrics in the Prometheus text format: latency and status of the
cart API routes, plus counters for cart operations, business rejections
and submitted sales. Meant to be scraped from inside the store network.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share samples through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    _metric_registry = None
else:
    registry = REGISTRY
    _metric_registry = registry

# Cart API traffic
api_requests_total = Counter(
    'pos_api_requests_total',
    'Cart API requests by route and status',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

api_request_seconds = Histogram(
    'pos_api_request_seconds',
    'Cart API latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

api_requests_in_flight = Gauge(
    'pos_api_requests_in_flight',
    'Cart API requests being served',
    registry=_metric_registry
)

# Cart engine
pos_cart_operations_total = Counter(
    'pos_cart_operations_total',
    'Cart operations by name and result',
    ['operation', 'result'],
    registry=_metric_registry
)

pos_cart_rejections_total = Counter(
    'pos_cart_rejections_total',
    'Cart operations rejected by a business rule',
    ['operation', 'code'],
    registry=_metric_registry
)

pos_sales_submitted_total = Counter(
    'pos_sales_submitted_total',
    'Sales submitted to the backend',
    ['document_type'],
    registry=_metric_registry
)


def record_outcome(operation: str, outcome) -> None:
    """Count one facade call; rejections are also counted by error code."""
    result = 'ok' if outcome.ok else 'rejected'
    pos_cart_operations_total.labels(operation=operation, result=result).inc()
    if not outcome.ok:
        pos_cart_rejections_total.labels(operation=operation, code=outcome.code or 'unknown').inc()


def record_sale(document_type) -> None:
    pos_sales_submitted_total.labels(document_type=document_type or 'unknown').inc()


def setup_metrics_instrumentation(app):
    """Time every request and count it by route and status."""

    @app.before_request
    def start_request_timer():
        g._pos_request_started = time.time()
        api_requests_in_flight.inc()

    @app.after_request
    def observe_request(response):
        started = g.pop('_pos_request_started', None)
        if started is None:
            return response
        try:
            # Blueprint endpoint name, e.g. 'cart.add_item'
            endpoint = request.endpoint or 'unknown'
            api_request_seconds.labels(method=request.method, endpoint=endpoint).observe(time.time() - started)
            api_requests_total.labels(
                method=request.method,
                endpoint=endpoint,
                http_status=response.status_code
            ).inc()
            api_requests_in_flight.dec()
        except Exception as e:
            app.logger.warning(f"[METRICS] Failed to record request: {e}")

        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus scrape endpoint (unauthenticated)."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)

"""Prometheus metrics for the billing service.

Exposes key metrics for monitoring:
- Request counts by endpoint and status
- Request duration histograms
- Invoice PDF rendering
- Currency conversions and exchange-rate provider calls
- Export row counts

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Invoice documents
documents_rendered_total = Counter(
    "invoice_documents_rendered_total",
    "Total invoice PDFs rendered",
    ["status"],  # success, failed
)

document_render_duration_seconds = Histogram(
    "invoice_document_render_duration_seconds",
    "Invoice PDF rendering duration in seconds",
    buckets=(0.05, 0.1, 0.5, 1.0, 2.0, 5.0),
)

# Currency conversion
currency_conversions_total = Counter(
    "invoice_currency_conversions_total",
    "Total invoice currency conversions",
    ["source", "target"],
)

exchange_rate_requests_total = Counter(
    "exchange_rate_requests_total",
    "Exchange-rate provider requests",
    ["status"],  # success, unavailable, rejected
)

exchange_rate_request_duration_seconds = Histogram(
    "exchange_rate_request_duration_seconds",
    "Exchange-rate provider request duration in seconds, retries included",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# Exports
export_rows_total = Counter(
    "export_rows_total",
    "Rows processed by exports",
    ["exporter", "status"],  # success, failed
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST

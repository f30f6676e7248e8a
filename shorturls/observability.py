from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import time

# Metrics definitions
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"]
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

SHORTURLS_CREATED_TOTAL = Counter("shorturls_created_total", "Total short links created")
REDIRECT_TOTAL = Counter("redirect_total", "Total redirects")
REDIRECT_NOT_FOUND_TOTAL = Counter("redirect_not_found_total", "Redirects to unknown shortcodes (404)")
REDIRECT_EXPIRED_TOTAL = Counter("redirect_expired_total", "Redirects to expired shortcodes (410)")
LOG_SINK_FAILURES = Counter("log_sink_failures_total", "Diagnostic events that could not be delivered")


def metric_path(path: str) -> str:
    # Shortcodes would blow up label cardinality
    if path.startswith("/shorturls/"):
        return "/shorturls/{code}"
    if path in ("/shorturls", "/metrics", "/health"):
        return path
    if len(path) > 1 and "/" not in path[1:]:
        return "/{code}"
    return path


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time = time.perf_counter() - start_time
        path = metric_path(request.url.path)

        HTTP_REQUESTS_TOTAL.labels(method=request.method, path=path, status=str(response.status_code)).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=request.method, path=path).observe(process_time)

        return response

def metrics_endpoint(request: Request):
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

"""Prometheus metrics.

HTTP layer:
  - foundry_gateway_http_requests_total{method, route, status}
  - foundry_gateway_http_request_duration_seconds{method, route}

Gateway layer (updated by GatewayService):
  - foundry_gateway_admission_rejections_total{reason}: rate | tokens | cost
  - foundry_gateway_executions_total{provider, outcome}
  - foundry_gateway_execution_duration_seconds{provider}
  - foundry_gateway_executions_in_flight{provider}
"""

import time

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from foundry_gateway import __version__

BUILD_INFO = Info("foundry_gateway_build", "Gateway build information")
BUILD_INFO.info({"version": __version__})

HTTP_REQUESTS = Counter(
    "foundry_gateway_http_requests_total",
    "HTTP requests by route and status",
    ["method", "route", "status"],
)

HTTP_DURATION = Histogram(
    "foundry_gateway_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "route"],
    buckets=[0.005, 0.025, 0.1, 0.5, 1, 5, 15, 30, 60, 120],
)

ADMISSION_REJECTIONS = Counter(
    "foundry_gateway_admission_rejections_total",
    "Requests turned away before any backend work",
    ["reason"],
)

EXECUTIONS = Counter(
    "foundry_gateway_executions_total",
    "Backend executions by outcome",
    ["provider", "outcome"],
)

EXECUTION_DURATION = Histogram(
    "foundry_gateway_execution_duration_seconds",
    "Wall time of one backend execution",
    ["provider"],
    buckets=[0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 120],
)

EXECUTIONS_IN_FLIGHT = Gauge(
    "foundry_gateway_executions_in_flight",
    "Backend executions currently running",
    ["provider"],
)


def _route_label(request: Request) -> str:
    # Route templates keep label cardinality bounded; unmatched paths share one label
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        route = _route_label(request)
        HTTP_REQUESTS.labels(method=request.method, route=route, status=str(response.status_code)).inc()
        HTTP_DURATION.labels(method=request.method, route=route).observe(elapsed)
        return response


def metrics_response() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

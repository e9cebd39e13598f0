"""
Prometheus-style metrics endpoint.
"""
import time
from typing import Callable, Dict, List, Tuple

from fastapi import APIRouter, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from wulang.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Metrics"])

# Durations kept per (method, path) before the oldest are dropped
MAX_DURATIONS = 1000

# Label for requests that matched no route
UNMATCHED_PATH = "unmatched"

# In-memory metrics storage
_requests_total: Dict[Tuple[str, str, int], int] = {}
_request_durations: Dict[Tuple[str, str], List[float]] = {}
_decisions_total: Dict[Tuple[str, bool], int] = {}
_startup_time = {"value": None}


def record_request(method: str, path: str, status_code: int, duration: float) -> None:
    """Record an HTTP request metric."""
    key = (method, path, status_code)
    _requests_total[key] = _requests_total.get(key, 0) + 1

    durations = _request_durations.setdefault((method, path), [])
    durations.append(duration)
    if len(durations) > MAX_DURATIONS:
        del durations[:-MAX_DURATIONS]


def record_decision(branch: str, failed: bool = False) -> None:
    """Count one orchestrator decision by branch and outcome."""
    key = (branch, failed)
    _decisions_total[key] = _decisions_total.get(key, 0) + 1


def set_startup_time() -> None:
    """Record application startup time."""
    _startup_time["value"] = time.time()


def route_template(request: Request) -> str:
    """The matched route's path template, e.g. ``/conversations/{sender_id}``."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_PATH


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect request metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        record_request(
            method=request.method,
            path=route_template(request),
            status_code=response.status_code,
            duration=duration,
        )

        return response


def generate_prometheus_metrics(version: str = "1.0.0") -> str:
    """Generate Prometheus-format metrics output."""
    lines = [
        "# HELP app_info Application information",
        "# TYPE app_info gauge",
        f'app_info{{version="{version}"}} 1',
        "",
    ]

    if _startup_time["value"]:
        lines.append("# HELP app_start_time_seconds Unix timestamp when the app started")
        lines.append("# TYPE app_start_time_seconds gauge")
        lines.append(f'app_start_time_seconds {_startup_time["value"]:.3f}')
        lines.append("")

    lines.append("# HELP http_requests_total Total number of HTTP requests")
    lines.append("# TYPE http_requests_total counter")
    for (method, path, status), count in _requests_total.items():
        lines.append(f'http_requests_total{{method="{method}",path="{path}",status="{status}"}} {count}')
    lines.append("")

    lines.append("# HELP http_request_duration_seconds HTTP request duration in seconds")
    lines.append("# TYPE http_request_duration_seconds summary")
    for (method, path), durations in _request_durations.items():
        if durations:
            lines.append(f'http_request_duration_seconds_sum{{method="{method}",path="{path}"}} {sum(durations):.6f}')
            lines.append(f'http_request_duration_seconds_count{{method="{method}",path="{path}"}} {len(durations)}')
    lines.append("")

    lines.append("# HELP conversation_decisions_total Inbound messages by pipeline branch")
    lines.append("# TYPE conversation_decisions_total counter")
    for (branch, failed), count in _decisions_total.items():
        outcome = "error" if failed else "ok"
        lines.append(f'conversation_decisions_total{{branch="{branch}",outcome="{outcome}"}} {count}')

    return "\n".join(lines)


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Returns metrics in Prometheus exposition format.",
    response_class=Response,
)
async def metrics(request: Request) -> Response:
    """Prometheus-style metrics endpoint."""
    content = generate_prometheus_metrics(request.app.version)
    return Response(
        content=content,
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )

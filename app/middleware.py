import logging
import json
from collections.abc import AsyncIterator
from typing import cast, Any, Self
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp


logger = logging.getLogger(__name__)


ANALYSIS_PATHS = ("/analyze", "/analyze/plan")


def safe_get(
    data: dict[str, Any],
    key: str,
    default: Any = None
) -> Any:
    """Safely get value from dictionary."""

    if not isinstance(data, dict):
        return default

    return data.get(key, default)


class ResponseLoggingMiddleware(BaseHTTPMiddleware):
    """FastAPI middleware for logging analysis responses."""

    def __init__(self: Self, app: ASGIApp) -> None:
        """Initialize the logging middleware."""
        super().__init__(app)

    async def dispatch(
        self: Self,
        request: Request,
        call_next: Any
    ) -> Response:
        """Process requests and log analysis summaries."""

        response = await call_next(request)

        if request.url.path not in ANALYSIS_PATHS:
            return response

        body = b""
        if hasattr(response, 'body_iterator'):
            body_iterator = cast(
                AsyncIterator[bytes],
                response.body_iterator
            )
            async for chunk in body_iterator:
                body += chunk

        if body and response.status_code == 200:
            try:
                self._log_analysis_response(
                    request, json.loads(body.decode())
                )
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.error(f"Failed to parse JSON response: {e}")

        return Response(
            content=body,
            status_code=response.status_code,
            headers=dict(response.headers),
            media_type=response.media_type
        )

    def _log_analysis_response(
        self: Self,
        request: Request,
        response_data: dict[str, Any]
    ) -> None:
        """Log analysis response data."""

        query = str(safe_get(response_data, "query", "") or "N/A")
        logger.info(f"Analysis Request: {request.url.path}")
        logger.info(
            f"Query: "
            f"{query[:100]}"
            f"{'...' if len(query) > 100 else ''}"
        )

        metrics = safe_get(response_data, "resource_metrics", {})
        cost = safe_get(response_data, "resource_cost", {})
        logger.info(
            f"Grade: {safe_get(metrics, 'performance_grade', 'N/A')} | "
            f"Overall: {safe_get(metrics, 'overall_performance', 'N/A')} | "
            f"Total Cost: {safe_get(cost, 'total_cost', 'N/A')}"
        )

        bottlenecks = safe_get(response_data, "bottlenecks", [])
        if not isinstance(bottlenecks, list):
            bottlenecks = []

        logger.info(f"Bottlenecks: {len(bottlenecks)}")
        for i, point in enumerate(bottlenecks[:3]):
            logger.info(
                f"  {i+1}. "
                f"[{safe_get(point, 'severity', 'N/A')}] "
                f"{safe_get(point, 'bottleneck_type', 'N/A')}: "
                f"{str(safe_get(point, 'description', ''))[:60]}"
            )

        suggestions = safe_get(response_data, "suggestions", [])
        if isinstance(suggestions, list):
            logger.info(
                f"Optimization Suggestions: {len(suggestions)}"
            )

        if logger.isEnabledFor(logging.DEBUG):
            advisory = safe_get(response_data, "advisory", {})
            logger.debug(
                f"Advisory ({safe_get(advisory, 'source', 'N/A')}): "
                f"{safe_get(advisory, 'bottleneck_type', 'N/A')} / "
                f"{safe_get(advisory, 'severity_level', 'N/A')}"
            )

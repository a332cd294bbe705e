"""External advisory generation with a deterministic fallback."""


import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional
from dataclasses import dataclass, field
from constants import (
    Defaults,
    ADVISORY_HIGH_TIME_MS,
    ADVISORY_MEDIUM_TIME_MS,
    ADVISORY_HIGH_SEVERITY,
    ADVISORY_MEDIUM_SEVERITY
)
from bottleneck_detector import BottleneckPoint, BottleneckType


logger = logging.getLogger(__name__)


@dataclass
class AdvisoryAnalysis:
    """Free-text advice about the main bottleneck of a query."""
    bottleneck_type: str
    severity_level: str
    detailed_description: str
    recommendation: str
    sql_suggestions: list[str] = field(default_factory=list)
    expected_improvement: float = 0.0
    impact_score: float = 0.0
    confidence_level: float = 0.0
    source: str = "fallback"


# Receives the analysis payload, returns advice
Advisor = Callable[[dict[str, Any]], AdvisoryAnalysis]


ADVISORY_TYPES: dict[BottleneckType, str] = {
    BottleneckType.HIGH_CPU: "RESOURCE_CONTENTION",
    BottleneckType.CPU_SPIKE: "RESOURCE_CONTENTION",
    BottleneckType.HIGH_IO: "FULL_TABLE_SCAN",
    BottleneckType.IO_SPIKE: "FULL_TABLE_SCAN",
    BottleneckType.DISK_IO: "FULL_TABLE_SCAN",
    BottleneckType.JOIN_INEFFICIENCY: "INEFFICIENT_JOIN",
}


def fallback_advisory(
    execution_time: float,
    bottlenecks: Optional[list[BottleneckPoint]] = None
) -> AdvisoryAnalysis:
    """Advice derived only from execution time and bottlenecks."""

    if execution_time > ADVISORY_HIGH_TIME_MS:
        severity_level = "HIGH"
    elif execution_time > ADVISORY_MEDIUM_TIME_MS:
        severity_level = "MEDIUM"
    else:
        severity_level = "LOW"

    analysis = AdvisoryAnalysis(
        bottleneck_type="QUERY_COMPLEXITY",
        severity_level=severity_level,
        detailed_description=(
            f"External advisory is unavailable, showing the "
            f"built-in analysis. The query ran for "
            f"{execution_time:.2f} ms."
        ),
        recommendation=(
            "Review index usage, tighten WHERE conditions and "
            "remove unnecessary joins"
        ),
        sql_suggestions=[
            "-- Review the query against the execution plan"
        ],
        expected_improvement=20.0,
        impact_score=60.0,
        confidence_level=50.0
    )

    if not bottlenecks:
        return analysis

    lines = [analysis.detailed_description, "", "Detected bottlenecks:"]
    for point in bottlenecks:
        lines.append(
            f"- {point.timestamp:.2f}ms: {point.description} "
            f"(severity: {point.severity:.1f})"
        )
    analysis.detailed_description = "\n".join(lines)

    most_severe = max(bottlenecks, key=lambda point: point.severity)
    analysis.bottleneck_type = ADVISORY_TYPES.get(
        most_severe.bottleneck_type, "QUERY_COMPLEXITY"
    )

    if most_severe.severity > ADVISORY_HIGH_SEVERITY:
        analysis.severity_level = "HIGH"
    elif most_severe.severity > ADVISORY_MEDIUM_SEVERITY:
        analysis.severity_level = "MEDIUM"

    return analysis


def request_advisory(
    advisor: Optional[Advisor],
    payload: dict[str, Any],
    execution_time: float,
    bottlenecks: list[BottleneckPoint],
    timeout_seconds: Optional[float] = None
) -> AdvisoryAnalysis:
    """
    Call the advisor under a timeout. Failures never propagate:
    any error or timeout yields the fallback analysis.
    """

    if advisor is None:
        return fallback_advisory(execution_time, bottlenecks)

    timeout = timeout_seconds or Defaults.ADVISORY_TIMEOUT_SECONDS
    executor = ThreadPoolExecutor(max_workers=1)

    try:
        future = executor.submit(advisor, payload)
        analysis = future.result(timeout=timeout)
        analysis.source = "advisor"
        return analysis

    except FutureTimeoutError:
        logger.warning(
            f"Advisory timed out after {timeout}s, using fallback"
        )

    except Exception as e:
        logger.warning(f"Advisory failed, using fallback: {e}")

    finally:
        # Do not block on a hung advisor
        executor.shutdown(wait=False, cancel_futures=True)

    return fallback_advisory(execution_time, bottlenecks)

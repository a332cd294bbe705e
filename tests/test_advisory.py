"""Tests for advisory generation and its fallback."""

import threading

import pytest

from advisory import AdvisoryAnalysis, fallback_advisory, request_advisory
from bottleneck_detector import BottleneckPoint, BottleneckType


def make_bottleneck(
    bottleneck_type: BottleneckType,
    severity: float
) -> BottleneckPoint:
    return BottleneckPoint(
        timestamp=12.0,
        bottleneck_type=bottleneck_type,
        severity=severity,
        description="Nested loop join is CPU bound (95.0%)",
        affected_operation="Nested Loop",
        recommendation="Index the inner join key",
        duration=3.0
    )


class TestFallbackAdvisory:

    @pytest.mark.parametrize("execution_time,level", [
        (500.0, "LOW"),
        (1000.0, "LOW"),
        (2000.0, "MEDIUM"),
        (6000.0, "HIGH"),
    ])
    def test_severity_from_time(self, execution_time, level):
        analysis = fallback_advisory(execution_time)
        assert analysis.severity_level == level
        assert analysis.bottleneck_type == "QUERY_COMPLEXITY"
        assert analysis.source == "fallback"

    def test_most_severe_bottleneck_wins(self):
        analysis = fallback_advisory(100.0, [
            make_bottleneck(BottleneckType.DISK_SORT, 80.0),
            make_bottleneck(BottleneckType.JOIN_INEFFICIENCY, 85.0)
        ])
        assert analysis.bottleneck_type == "INEFFICIENT_JOIN"
        assert analysis.severity_level == "HIGH"
        assert "Detected bottlenecks:" in analysis.detailed_description

    def test_medium_severity_bottleneck(self):
        analysis = fallback_advisory(
            100.0, [make_bottleneck(BottleneckType.HIGH_IO, 65.0)]
        )
        assert analysis.bottleneck_type == "FULL_TABLE_SCAN"
        assert analysis.severity_level == "MEDIUM"

    def test_unmapped_type(self):
        analysis = fallback_advisory(
            100.0, [make_bottleneck(BottleneckType.MEMORY, 10.0)]
        )
        assert analysis.bottleneck_type == "QUERY_COMPLEXITY"
        assert analysis.severity_level == "LOW"


class TestRequestAdvisory:

    def test_without_advisor(self):
        analysis = request_advisory(None, {}, 100.0, [])
        assert analysis.source == "fallback"

    def test_advisor_result(self):
        def advisor(payload):
            return AdvisoryAnalysis(
                bottleneck_type="MISSING_INDEX",
                severity_level="HIGH",
                detailed_description=payload["query"],
                recommendation="CREATE INDEX"
            )

        analysis = request_advisory(advisor, {"query": "SELECT 1"}, 10.0, [])
        assert analysis.source == "advisor"
        assert analysis.detailed_description == "SELECT 1"

    def test_advisor_failure(self):
        def advisor(payload):
            raise RuntimeError("service unavailable")

        analysis = request_advisory(advisor, {}, 2000.0, [])
        assert analysis.source == "fallback"
        assert analysis.severity_level == "MEDIUM"

    def test_advisor_timeout(self):
        release = threading.Event()

        def advisor(payload):
            release.wait(5)
            return AdvisoryAnalysis("X", "LOW", "", "")

        try:
            analysis = request_advisory(
                advisor, {}, 100.0, [], timeout_seconds=0.05
            )
        finally:
            release.set()

        assert analysis.source == "fallback"

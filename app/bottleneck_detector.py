"""Bottleneck detection over a reconstructed resource timeline."""


import logging
from enum import Enum
from typing import Optional, Self
from dataclasses import dataclass
from constants import (
    Defaults,
    BYTES_PER_MB,
    HIGH_CPU_MAX,
    HIGH_IO_MAX_MS,
    MEMORY_MAX_FACTOR,
    DISK_IO_MAX_FACTOR,
    READ_DOMINANCE_FACTOR,
    WRITE_DOMINANCE_FACTOR,
    NESTED_LOOP_CPU_THRESHOLD,
    SORT_IO_WAIT_THRESHOLD_MS,
    HASH_MEMORY_FACTOR,
    JOIN_INEFFICIENCY_SEVERITY,
    DISK_SORT_SEVERITY,
    HASH_MEMORY_SEVERITY,
    LAST_POINT_DURATION_MS
)
from plan_aggregator import ResourceUsage
from plan_tree import OperatorKind
from time_series import TimePoint


logger = logging.getLogger(__name__)


class BottleneckType(str, Enum):
    CPU_SPIKE = "CPU_SPIKE"
    IO_SPIKE = "IO_SPIKE"
    MEMORY_SPIKE = "MEMORY_SPIKE"
    HIGH_CPU = "HIGH_CPU"
    HIGH_IO = "HIGH_IO"
    MEMORY = "MEMORY"
    DISK_IO = "DISK_IO"
    JOIN_INEFFICIENCY = "JOIN_INEFFICIENCY"
    DISK_SORT = "DISK_SORT"
    HASH_MEMORY = "HASH_MEMORY"


@dataclass
class BottleneckPoint:
    """One detected anomaly on the timeline."""
    timestamp: float
    bottleneck_type: BottleneckType
    severity: float
    description: str
    affected_operation: str
    recommendation: str
    duration: float


OPERATOR_RECOMMENDATIONS: dict[OperatorKind, str] = {
    OperatorKind.SEQ_SCAN: (
        "Add an index on the filtered columns to avoid "
        "scanning the whole table"
    ),
    OperatorKind.NESTED_LOOP: (
        "Index the inner join key or let the planner "
        "choose a hash join"
    ),
    OperatorKind.SORT: (
        "Add an index matching the ORDER BY columns "
        "or raise work_mem"
    ),
    OperatorKind.HASH: "Raise work_mem so the hash table fits in memory",
    OperatorKind.HASH_JOIN: (
        "Make the smaller relation the hash side and "
        "raise work_mem"
    ),
    OperatorKind.MERGE_JOIN: "Index both join keys to avoid explicit sorts",
    OperatorKind.AGGREGATE: (
        "Pre-aggregate with a materialized view or "
        "filter rows earlier"
    ),
    OperatorKind.HASH_AGGREGATE: (
        "Raise work_mem or reduce the number of groups"
    ),
    OperatorKind.GROUP_AGGREGATE: (
        "Index the GROUP BY columns to feed pre-sorted input"
    ),
}
DEFAULT_RECOMMENDATION = (
    "Review this operation in the execution plan and "
    "reduce the rows it processes"
)


def operator_recommendation(operation_type: str) -> str:
    operator = OperatorKind.from_node_type(operation_type)
    return OPERATOR_RECOMMENDATIONS.get(operator, DEFAULT_RECOMMENDATION)


def scale_severity(value: float, threshold: float, maximum: float) -> float:
    """Linear 0-100 severity between threshold and maximum."""

    if value <= threshold or maximum <= threshold:
        return 0.0

    clamped = max(threshold, min(value, maximum))
    return ((clamped - threshold) / (maximum - threshold)) * 100


class BottleneckDetector:
    """Finds spikes and sustained pressure in a time series."""

    def __init__(
        self: Self,
        cpu_spike_delta: Optional[float] = None,
        io_spike_delta_ms: Optional[float] = None,
        memory_spike_delta_mb: Optional[float] = None,
        high_cpu_threshold: Optional[float] = None,
        high_io_threshold_ms: Optional[float] = None,
        memory_threshold_bytes: Optional[int] = None,
        disk_io_threshold_blocks: Optional[int] = None,
        dedup_window_ms: Optional[float] = None
    ) -> None:
        """Initialization with optional threshold overrides."""

        self.CPU_SPIKE_DELTA = (
            cpu_spike_delta or
            Defaults.CPU_SPIKE_DELTA
        )
        self.IO_SPIKE_DELTA_MS = (
            io_spike_delta_ms or
            Defaults.IO_SPIKE_DELTA_MS
        )
        self.MEMORY_SPIKE_DELTA_MB = (
            memory_spike_delta_mb or
            Defaults.MEMORY_SPIKE_DELTA_MB
        )
        self.HIGH_CPU_THRESHOLD = (
            high_cpu_threshold or
            Defaults.HIGH_CPU_THRESHOLD
        )
        self.HIGH_IO_THRESHOLD_MS = (
            high_io_threshold_ms or
            Defaults.HIGH_IO_THRESHOLD_MS
        )
        self.MEMORY_THRESHOLD_BYTES = (
            memory_threshold_bytes or
            Defaults.MEMORY_THRESHOLD_BYTES
        )
        self.DISK_IO_THRESHOLD_BLOCKS = (
            disk_io_threshold_blocks or
            Defaults.DISK_IO_THRESHOLD_BLOCKS
        )
        self.DEDUP_WINDOW_MS = (
            dedup_window_ms or
            Defaults.DEDUP_WINDOW_MS
        )

    def detect(
        self: Self,
        time_series: list[TimePoint],
        usage: ResourceUsage
    ) -> list[BottleneckPoint]:
        """Ranked, deduplicated bottlenecks for a timeline."""

        if not time_series:
            return []

        findings = (
            self._detect_spikes(time_series) +
            self._detect_thresholds(time_series, usage)
        )

        # sorted() is stable, so equal severities keep detection order
        ranked = sorted(
            findings, key=lambda point: point.severity, reverse=True
        )
        result = self._deduplicate(ranked)

        logger.info(
            f"Detected {len(result)} bottlenecks "
            f"({len(findings) - len(result)} duplicates dropped)"
        )

        return result

    def _duration(self: Self, time_series: list[TimePoint], index: int) -> float:
        """Gap to the next point, or a fixed duration for the last."""

        if index + 1 >= len(time_series):
            return LAST_POINT_DURATION_MS

        return max(
            0.0,
            time_series[index + 1].timestamp -
            time_series[index].timestamp
        )

    def _detect_spikes(
        self: Self,
        time_series: list[TimePoint]
    ) -> list[BottleneckPoint]:
        """Compare each point with its predecessor."""

        findings: list[BottleneckPoint] = []

        for index in range(1, len(time_series)):
            previous = time_series[index - 1]
            current = time_series[index]
            duration = self._duration(time_series, index)
            transition = (
                f"from {previous.node_name} to {current.node_name}"
            )

            cpu_delta = current.cpu_usage - previous.cpu_usage
            if cpu_delta > self.CPU_SPIKE_DELTA:
                findings.append(BottleneckPoint(
                    timestamp=current.timestamp,
                    bottleneck_type=BottleneckType.CPU_SPIKE,
                    severity=min(100.0, cpu_delta * 2),
                    description=(
                        f"CPU usage jumped by {cpu_delta:.1f} points "
                        f"{transition}"
                    ),
                    affected_operation=current.node_name,
                    recommendation=(
                        f"CPU load rises sharply after "
                        f"{previous.node_name}. "
                        f"{operator_recommendation(current.operation_type)} "
                        f"in {current.node_name}."
                    ),
                    duration=duration
                ))

            io_delta = current.io_wait_time - previous.io_wait_time
            if io_delta > self.IO_SPIKE_DELTA_MS:
                findings.append(BottleneckPoint(
                    timestamp=current.timestamp,
                    bottleneck_type=BottleneckType.IO_SPIKE,
                    severity=min(100.0, io_delta * 3),
                    description=(
                        f"I/O wait jumped by {io_delta:.1f} ms "
                        f"{transition}"
                    ),
                    affected_operation=current.node_name,
                    recommendation=(
                        f"I/O wait rises sharply after "
                        f"{previous.node_name}. Check that "
                        f"{current.node_name} reads through an index "
                        f"and that its data fits in shared_buffers."
                    ),
                    duration=duration
                ))

            memory_delta_mb = (
                (current.memory_usage - previous.memory_usage) /
                BYTES_PER_MB
            )
            if memory_delta_mb > self.MEMORY_SPIKE_DELTA_MB:
                findings.append(BottleneckPoint(
                    timestamp=current.timestamp,
                    bottleneck_type=BottleneckType.MEMORY_SPIKE,
                    severity=min(100.0, memory_delta_mb / 10),
                    description=(
                        f"Memory estimate grew by "
                        f"{memory_delta_mb:.1f} MB {transition}"
                    ),
                    affected_operation=current.node_name,
                    recommendation=(
                        f"Memory demand rises sharply after "
                        f"{previous.node_name}. Reduce the rows or "
                        f"columns flowing into {current.node_name}."
                    ),
                    duration=duration
                ))

        return findings

    def _detect_thresholds(
        self: Self,
        time_series: list[TimePoint],
        usage: ResourceUsage
    ) -> list[BottleneckPoint]:
        """Check each point against absolute limits."""

        findings: list[BottleneckPoint] = []
        hit_ratio = usage.buffer_hit_ratio * 100

        for index, point in enumerate(time_series):
            duration = self._duration(time_series, index)
            operator = OperatorKind.from_node_type(point.operation_type)

            if point.cpu_usage > self.HIGH_CPU_THRESHOLD:
                findings.append(BottleneckPoint(
                    timestamp=point.timestamp,
                    bottleneck_type=BottleneckType.HIGH_CPU,
                    severity=scale_severity(
                        point.cpu_usage,
                        self.HIGH_CPU_THRESHOLD,
                        HIGH_CPU_MAX
                    ),
                    description=(
                        f"High CPU usage ({point.cpu_usage:.1f}%) "
                        f"in {point.node_name}"
                    ),
                    affected_operation=point.node_name,
                    recommendation=operator_recommendation(
                        point.operation_type
                    ),
                    duration=duration
                ))

            if point.io_wait_time > self.HIGH_IO_THRESHOLD_MS:
                findings.append(BottleneckPoint(
                    timestamp=point.timestamp,
                    bottleneck_type=BottleneckType.HIGH_IO,
                    severity=scale_severity(
                        point.io_wait_time,
                        self.HIGH_IO_THRESHOLD_MS,
                        HIGH_IO_MAX_MS
                    ),
                    description=(
                        f"High I/O wait ({point.io_wait_time:.1f} ms) "
                        f"in {point.node_name}"
                    ),
                    affected_operation=point.node_name,
                    recommendation=(
                        f"Plan-wide buffer hit ratio is "
                        f"{hit_ratio:.1f}%. Add an index to cut "
                        f"block reads or enlarge shared_buffers."
                    ),
                    duration=duration
                ))

            if point.memory_usage > self.MEMORY_THRESHOLD_BYTES:
                findings.append(BottleneckPoint(
                    timestamp=point.timestamp,
                    bottleneck_type=BottleneckType.MEMORY,
                    severity=scale_severity(
                        point.memory_usage,
                        self.MEMORY_THRESHOLD_BYTES,
                        self.MEMORY_THRESHOLD_BYTES * MEMORY_MAX_FACTOR
                    ),
                    description=(
                        f"High memory estimate "
                        f"({point.memory_usage / BYTES_PER_MB:.1f} MB) "
                        f"in {point.node_name}"
                    ),
                    affected_operation=point.node_name,
                    recommendation=(
                        "Select only the needed columns and filter "
                        "rows earlier to shrink intermediate results"
                    ),
                    duration=duration
                ))

            disk_blocks = point.disk_reads + point.disk_writes
            if disk_blocks > self.DISK_IO_THRESHOLD_BLOCKS:
                findings.append(BottleneckPoint(
                    timestamp=point.timestamp,
                    bottleneck_type=BottleneckType.DISK_IO,
                    severity=scale_severity(
                        disk_blocks,
                        self.DISK_IO_THRESHOLD_BLOCKS,
                        self.DISK_IO_THRESHOLD_BLOCKS * DISK_IO_MAX_FACTOR
                    ),
                    description=(
                        f"Heavy disk access ({point.disk_reads} reads, "
                        f"{point.disk_writes} writes) "
                        f"in {point.node_name}"
                    ),
                    affected_operation=point.node_name,
                    recommendation=self._disk_io_recommendation(point),
                    duration=duration
                ))

            findings.extend(
                self._detect_operator_cases(point, operator, duration)
            )

        return findings

    def _disk_io_recommendation(self: Self, point: TimePoint) -> str:
        reads = point.disk_reads
        writes = point.disk_writes

        if reads > writes * READ_DOMINANCE_FACTOR:
            return (
                "Reads dominate: add covering indexes or raise "
                "shared_buffers to keep hot blocks cached"
            )

        elif writes > reads * WRITE_DOMINANCE_FACTOR:
            return (
                "Writes dominate: raise work_mem to avoid temp "
                "spills and review checkpoint settings"
            )

        return (
            "Mixed read/write load: tune shared_buffers and "
            "work_mem together"
        )

    def _detect_operator_cases(
        self: Self,
        point: TimePoint,
        operator: OperatorKind,
        duration: float
    ) -> list[BottleneckPoint]:
        """Operator-specific findings with fixed severities."""

        findings: list[BottleneckPoint] = []

        if (
            operator is OperatorKind.NESTED_LOOP and
            point.cpu_usage > NESTED_LOOP_CPU_THRESHOLD
        ):
            findings.append(BottleneckPoint(
                timestamp=point.timestamp,
                bottleneck_type=BottleneckType.JOIN_INEFFICIENCY,
                severity=JOIN_INEFFICIENCY_SEVERITY,
                description=(
                    f"Nested loop join is CPU bound "
                    f"({point.cpu_usage:.1f}%)"
                ),
                affected_operation=point.node_name,
                recommendation=OPERATOR_RECOMMENDATIONS[
                    OperatorKind.NESTED_LOOP
                ],
                duration=duration
            ))

        if (
            operator is OperatorKind.SORT and
            point.io_wait_time > SORT_IO_WAIT_THRESHOLD_MS
        ):
            findings.append(BottleneckPoint(
                timestamp=point.timestamp,
                bottleneck_type=BottleneckType.DISK_SORT,
                severity=DISK_SORT_SEVERITY,
                description=(
                    f"Sort waits on disk "
                    f"({point.io_wait_time:.1f} ms)"
                ),
                affected_operation=point.node_name,
                recommendation=(
                    "Raise work_mem so the sort completes in memory"
                ),
                duration=duration
            ))

        if (
            operator is OperatorKind.HASH and
            point.memory_usage >
            self.MEMORY_THRESHOLD_BYTES * HASH_MEMORY_FACTOR
        ):
            findings.append(BottleneckPoint(
                timestamp=point.timestamp,
                bottleneck_type=BottleneckType.HASH_MEMORY,
                severity=HASH_MEMORY_SEVERITY,
                description=(
                    f"Hash table needs about "
                    f"{point.memory_usage / BYTES_PER_MB:.1f} MB"
                ),
                affected_operation=point.node_name,
                recommendation=OPERATOR_RECOMMENDATIONS[OperatorKind.HASH],
                duration=duration
            ))

        return findings

    def _deduplicate(
        self: Self,
        ranked: list[BottleneckPoint]
    ) -> list[BottleneckPoint]:
        """Keep the first finding of a type within the window."""

        kept: list[BottleneckPoint] = []

        for candidate in ranked:
            duplicate = any(
                point.bottleneck_type is candidate.bottleneck_type and
                abs(point.timestamp - candidate.timestamp) <=
                self.DEDUP_WINDOW_MS
                for point in kept
            )
            if not duplicate:
                kept.append(candidate)

        return kept

"""Resource efficiency scoring and grading."""


from typing import Self
from dataclasses import dataclass
from constants import (
    SCORE_WEIGHT_CPU,
    SCORE_WEIGHT_IO,
    SCORE_WEIGHT_MEMORY,
    SCORE_WEIGHT_NETWORK,
    CPU_TIME_BANDS,
    HITS_PER_ROW_BANDS,
    ROW_WIDTH_BANDS,
    LOWEST_BAND_SCORE,
    GRADE_BANDS,
    LOWEST_GRADE
)
from plan_aggregator import ResourceUsage


# Best grade first
GRADE_ORDER: tuple[str, ...] = (
    tuple(grade for _, grade in GRADE_BANDS) + (LOWEST_GRADE,)
)


@dataclass
class ResourceMetrics:
    """Normalized 0-100 efficiency scores with a letter grade."""
    cpu_intensity: float
    io_efficiency: float
    memory_efficiency: float
    network_efficiency: float
    overall_performance: float
    performance_grade: str


def band_score(
    value: float,
    bands: tuple[tuple[float, float], ...]
) -> float:
    """Score of the first band whose upper bound exceeds value."""

    for upper_bound, score in bands:
        if value < upper_bound:
            return score
    return LOWEST_BAND_SCORE


def performance_grade(score: float) -> str:
    for lower_bound, grade in GRADE_BANDS:
        if score >= lower_bound:
            return grade
    return LOWEST_GRADE


class ResourceEfficiencyScorer:
    """Scores aggregated resource usage."""

    def score(self: Self, usage: ResourceUsage) -> ResourceMetrics:
        """Compute sub-scores, the weighted score and the grade."""

        cpu = self.cpu_intensity(usage)
        io = self.io_efficiency(usage)
        memory = self.memory_efficiency(usage)
        network = self.network_efficiency(usage)

        overall = (
            cpu * SCORE_WEIGHT_CPU +
            io * SCORE_WEIGHT_IO +
            memory * SCORE_WEIGHT_MEMORY +
            network * SCORE_WEIGHT_NETWORK
        )

        return ResourceMetrics(
            cpu_intensity=cpu,
            io_efficiency=io,
            memory_efficiency=memory,
            network_efficiency=network,
            overall_performance=overall,
            performance_grade=performance_grade(overall)
        )

    def cpu_intensity(self: Self, usage: ResourceUsage) -> float:
        """Faster plans score higher."""
        return band_score(usage.actual_time, CPU_TIME_BANDS)

    def io_efficiency(self: Self, usage: ResourceUsage) -> float:
        return usage.buffer_hit_ratio * 100

    def memory_efficiency(self: Self, usage: ResourceUsage) -> float:
        """Fewer buffer hits per estimated row score higher."""

        if usage.plan_rows <= 0:
            return 100.0

        hits_per_row = usage.shared_blks_hit / usage.plan_rows
        return band_score(hits_per_row, HITS_PER_ROW_BANDS)

    def network_efficiency(self: Self, usage: ResourceUsage) -> float:
        """Narrower rows score higher."""

        if usage.plan_rows <= 0:
            return 100.0

        return band_score(usage.plan_width, ROW_WIDTH_BANDS)


def generate_resource_report(
    usage: ResourceUsage,
    metrics: ResourceMetrics
) -> str:
    """Plain-text summary of usage and efficiency scores."""

    lines = [
        "=== Resource usage analysis ===",
        "",
        "Execution metrics:",
        f"- Execution time: {usage.actual_time:.2f} ms",
        f"- Estimated rows: {usage.plan_rows}",
        f"- Average row width: {usage.plan_width} bytes",
        "",
        "Buffer usage:",
        f"- Buffer hits: {usage.shared_blks_hit} blocks",
        f"- Disk reads: {usage.shared_blks_read} blocks",
        f"- Disk writes: {usage.shared_blks_written} blocks",
        "",
        "Efficiency:",
        f"- CPU efficiency: {metrics.cpu_intensity:.1f}%",
        f"- I/O efficiency: {metrics.io_efficiency:.1f}%",
        f"- Memory efficiency: {metrics.memory_efficiency:.1f}%",
        f"- Network efficiency: {metrics.network_efficiency:.1f}%",
        "",
        f"Overall score: {metrics.overall_performance:.1f}% "
        f"({metrics.performance_grade})"
    ]
    return "\n".join(lines)

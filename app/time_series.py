"""
Synthetic per-operator timeline for an executed plan.

EXPLAIN reports durations per subtree, not a global schedule,
so start offsets are synthesized from the tree shape and then
spread over the total execution time for presentation.
"""


import logging
from typing import Optional, Self
from dataclasses import dataclass, field
from constants import (
    Defaults,
    READ_WAIT_MS_PER_BLOCK,
    WRITE_WAIT_MS_PER_BLOCK,
    REDISTRIBUTION_MIN_GAP_RATIO,
    REDISTRIBUTION_MIN_GAP_MS,
    TIME_UNIT
)
from plan_tree import OperatorKind, PlanNode, PlanTree


logger = logging.getLogger(__name__)


CPU_WEIGHTS: dict[OperatorKind, float] = {
    OperatorKind.SEQ_SCAN: 1.5,
    OperatorKind.NESTED_LOOP: 2.0,
    OperatorKind.SORT: 1.8,
    OperatorKind.HASH: 1.4,
    OperatorKind.HASH_JOIN: 1.3,
    OperatorKind.AGGREGATE: 1.2,
    OperatorKind.HASH_AGGREGATE: 1.2,
    OperatorKind.GROUP_AGGREGATE: 1.2,
    OperatorKind.MERGE_JOIN: 1.1,
    OperatorKind.INDEX_SCAN: 0.8,
    OperatorKind.INDEX_ONLY_SCAN: 0.8,
}
DEFAULT_CPU_WEIGHT = 1.0

# Children of these operators run concurrently
PARALLEL_OPERATORS = frozenset({
    OperatorKind.HASH_JOIN,
    OperatorKind.MERGE_JOIN,
    OperatorKind.BITMAP_HEAP_SCAN
})


@dataclass
class TimePoint:
    """One synthetic sample on the reconstructed timeline."""
    timestamp: float
    cpu_usage: float
    io_wait_time: float
    memory_usage: float
    disk_reads: int
    disk_writes: int
    operation_type: str
    node_name: str


@dataclass
class TimeSeriesMetrics:
    time_points: list[TimePoint] = field(default_factory=list)
    total_execution_time: float = 0.0
    time_unit: str = TIME_UNIT


def cpu_weight(operator: OperatorKind) -> float:
    return CPU_WEIGHTS.get(operator, DEFAULT_CPU_WEIGHT)


def runs_children_in_parallel(node: PlanNode) -> bool:
    return node.operator in PARALLEL_OPERATORS or node.is_parallel


class TimeSeriesReconstructor:
    """Rebuilds an approximate resource timeline from a plan tree."""

    def __init__(
        self: Self,
        even_weight: Optional[float] = None,
        io_wait_cap_ratio: Optional[float] = None
    ) -> None:
        self.EVEN_WEIGHT = (
            even_weight or
            Defaults.REDISTRIBUTION_EVEN_WEIGHT
        )
        self.IO_WAIT_CAP_RATIO = (
            io_wait_cap_ratio or
            Defaults.IO_WAIT_CAP_RATIO
        )

    def reconstruct(self: Self, tree: PlanTree) -> list[TimePoint]:
        """Synthesize time points in timestamp order."""

        total_time = tree.total_time
        points = self.synthesize(tree)
        self._redistribute(points, total_time)

        logger.debug(
            f"Reconstructed {len(points)} time points "
            f"over {total_time:.2f} {TIME_UNIT}"
        )

        return sorted(points, key=lambda point: point.timestamp)

    def synthesize(self: Self, tree: PlanTree) -> list[TimePoint]:
        """Time points at their provisional offsets, in walk order."""

        points: list[TimePoint] = []
        self._walk(tree.root, 0.0, tree.total_time, points)
        return points

    def build_metrics(self: Self, tree: PlanTree) -> TimeSeriesMetrics:
        return TimeSeriesMetrics(
            time_points=self.reconstruct(tree),
            total_execution_time=tree.total_time
        )

    def _walk(
        self: Self,
        node: PlanNode,
        start_offset: float,
        total_time: float,
        points: list[TimePoint]
    ) -> None:
        """Depth-first walk assigning provisional start offsets."""

        points.append(self._create_point(node, start_offset, total_time))

        parallel = runs_children_in_parallel(node)
        child_offset = start_offset

        for child in node.children:
            if parallel:
                self._walk(child, start_offset, total_time, points)
            else:
                self._walk(child, child_offset, total_time, points)
                child_offset += child.execution_time

    def _create_point(
        self: Self,
        node: PlanNode,
        timestamp: float,
        total_time: float
    ) -> TimePoint:
        execution_time = node.execution_time

        return TimePoint(
            timestamp=timestamp,
            cpu_usage=self._cpu_usage(node, execution_time, total_time),
            io_wait_time=self._io_wait_time(node, execution_time),
            memory_usage=float(node.plan_rows * node.plan_width),
            disk_reads=node.shared_read_blocks,
            disk_writes=node.shared_written_blocks,
            operation_type=node.node_type,
            node_name=node.display_name
        )

    def _cpu_usage(
        self: Self,
        node: PlanNode,
        execution_time: float,
        total_time: float
    ) -> float:
        """Weighted share of the plan time, clamped to [0, 100]."""

        if total_time <= 0:
            return 0.0

        usage = (
            (execution_time / total_time) * 100 *
            cpu_weight(node.operator)
        )
        return max(0.0, min(100.0, usage))

    def _io_wait_time(
        self: Self,
        node: PlanNode,
        execution_time: float
    ) -> float:
        """Wait estimate from block counts, scaled by the miss ratio."""

        hits = node.shared_hit_blocks
        reads = node.shared_read_blocks

        hit_ratio = hits / (hits + reads) if hits + reads > 0 else 0.0

        io_wait = (
            reads * READ_WAIT_MS_PER_BLOCK +
            node.shared_written_blocks * WRITE_WAIT_MS_PER_BLOCK
        ) * (1 - hit_ratio)

        return min(io_wait, execution_time * self.IO_WAIT_CAP_RATIO)

    def _redistribute(
        self: Self,
        points: list[TimePoint],
        total_time: float
    ) -> None:
        """
        Blend each timestamp with an evenly spaced slot, then
        enforce a minimum gap and cap at the total time.
        The result is non-decreasing and within [0, total_time].
        """

        if not points:
            return

        slot = total_time / len(points)
        min_gap = max(
            total_time * REDISTRIBUTION_MIN_GAP_RATIO,
            REDISTRIBUTION_MIN_GAP_MS
        )
        previous: Optional[float] = None

        for index, point in enumerate(points):
            even_offset = slot * index
            timestamp = (
                even_offset * self.EVEN_WEIGHT +
                point.timestamp * (1 - self.EVEN_WEIGHT)
            )

            if previous is not None:
                timestamp = max(timestamp, previous + min_gap)

            timestamp = max(0.0, min(timestamp, total_time))
            point.timestamp = timestamp
            previous = timestamp

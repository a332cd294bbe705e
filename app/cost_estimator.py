"""Monetary cost estimation for executed plans."""


import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Self
from dataclasses import dataclass, field
from constants import (
    Defaults,
    BLOCK_SIZE_KB,
    KB_PER_MB,
    COST_DECIMAL_PLACES,
    CPU_INTENSITY_BASE,
    MERGE_JOIN_INTENSITY,
    HASH_JOIN_INTENSITY,
    NESTED_LOOP_INTENSITY,
    AGGREGATE_INTENSITY,
    SUBPLAN_INTENSITY,
    SIGNIFICANT_NODE_COST_SHARE,
    EXPENSIVE_NESTED_LOOP_SHARE,
    HASH_JOIN_ROW_MISESTIMATE_FACTOR,
    COST_GRADE_BANDS
)
from plan_tree import OperatorKind, PlanNode, PlanTree


logger = logging.getLogger(__name__)


SORT_HASH_OPERATORS = frozenset({
    OperatorKind.SORT,
    OperatorKind.HASH,
    OperatorKind.HASH_JOIN,
    OperatorKind.HASH_AGGREGATE
})

JOIN_INTENSITY: dict[OperatorKind, float] = {
    OperatorKind.MERGE_JOIN: MERGE_JOIN_INTENSITY,
    OperatorKind.HASH_JOIN: HASH_JOIN_INTENSITY,
    OperatorKind.NESTED_LOOP: NESTED_LOOP_INTENSITY,
}


@dataclass
class ResourceCost:
    """Monetary cost breakdown of one plan execution."""
    cpu_cost: float = 0.0
    io_cost: float = 0.0
    memory_cost: float = 0.0
    network_cost: float = 0.0
    total_cost: float = 0.0
    analysis_details: str = ""
    breakdown: dict[str, float] = field(default_factory=dict)


@dataclass
class CostProjection:
    """Recurring cost of a query run on a schedule."""
    executions_per_month: int
    cost_per_query: float
    monthly_cost: float
    yearly_cost: float
    cost_grade: str


def round_cost(value: float) -> float:
    """Round half-up to the fixed cost precision."""

    quantum = Decimal(1).scaleb(-COST_DECIMAL_PLACES)
    return float(
        Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    )


def blocks_to_mb(blocks: int) -> float:
    return (blocks * BLOCK_SIZE_KB) / KB_PER_MB


class CostEstimator:
    """Converts executed plan nodes into monetary cost."""

    def __init__(
        self: Self,
        cpu_second_cost: Optional[float] = None,
        disk_read_mb_cost: Optional[float] = None,
        disk_write_mb_cost: Optional[float] = None,
        sort_hash_operation_cost: Optional[float] = None,
        row_processing_cost: Optional[float] = None,
        cpu_intensity_cap: Optional[float] = None,
        cache_hit_threshold: Optional[int] = None,
        seq_scan_rows_threshold: Optional[int] = None
    ) -> None:
        """Initialization with optional rate overrides."""

        self.CPU_SECOND_COST = (
            cpu_second_cost or
            Defaults.CPU_SECOND_COST
        )
        self.DISK_READ_MB_COST = (
            disk_read_mb_cost or
            Defaults.DISK_READ_MB_COST
        )
        self.DISK_WRITE_MB_COST = (
            disk_write_mb_cost or
            Defaults.DISK_WRITE_MB_COST
        )
        self.SORT_HASH_OPERATION_COST = (
            sort_hash_operation_cost or
            Defaults.SORT_HASH_OPERATION_COST
        )
        self.ROW_PROCESSING_COST = (
            row_processing_cost or
            Defaults.ROW_PROCESSING_COST
        )
        self.CPU_INTENSITY_CAP = (
            cpu_intensity_cap or
            Defaults.CPU_INTENSITY_CAP
        )
        self.CACHE_HIT_THRESHOLD = (
            cache_hit_threshold or
            Defaults.CACHE_HIT_THRESHOLD
        )
        self.SEQ_SCAN_ROWS_THRESHOLD = (
            seq_scan_rows_threshold or
            Defaults.SEQ_SCAN_ROWS_THRESHOLD
        )

    def estimate(
        self: Self,
        nodes: list[PlanNode],
        total_time: Optional[float] = None
    ) -> ResourceCost:
        """
        Estimate the cost of a pre-order node list.
        The first node is the plan root and carries the engine
        cost, and its actual time unless total_time is given.
        """

        if not nodes:
            return ResourceCost(
                analysis_details="No plan nodes to estimate."
            )

        root = nodes[0]
        if total_time is None:
            total_time = root.actual_total_time

        cpu_cost = self._calculate_cpu_cost(total_time, nodes)
        read_cost, write_cost = self._calculate_disk_costs(nodes)
        sort_hash_cost = self._calculate_sort_hash_cost(nodes)
        row_cost = self._calculate_row_processing_cost(nodes)

        breakdown = {
            "cpu": cpu_cost,
            "disk_read": read_cost,
            "disk_write": write_cost,
            "sort_hash": sort_hash_cost,
            "row_processing": row_cost
        }

        # Parts and total are rounded independently, so the
        # reported total may differ from the parts in the last digit
        total_cost = (
            cpu_cost + read_cost + write_cost +
            sort_hash_cost + row_cost
        )

        cost = ResourceCost(
            cpu_cost=round_cost(cpu_cost),
            io_cost=round_cost(read_cost + write_cost),
            memory_cost=round_cost(sort_hash_cost),
            network_cost=round_cost(row_cost),
            total_cost=round_cost(total_cost),
            breakdown={
                name: round_cost(value)
                for name, value in breakdown.items()
            }
        )
        cost.analysis_details = self._generate_analysis_details(
            root, nodes, breakdown, total_time
        )

        logger.info(
            f"Estimated plan cost {cost.total_cost:.6f} "
            f"over {len(nodes)} nodes"
        )

        return cost

    def estimate_tree(self: Self, tree: PlanTree) -> ResourceCost:
        return self.estimate(tree.nodes(), tree.total_time)

    def estimate_cpu_intensity(self: Self, nodes: list[PlanNode]) -> float:
        """Intensity multiplier from join, aggregate and sub-plan nodes."""

        intensity = CPU_INTENSITY_BASE

        for node in nodes:
            operator = node.operator
            intensity += JOIN_INTENSITY.get(operator, 0.0)

            if operator.is_aggregate:
                intensity += AGGREGATE_INTENSITY

            if node.is_subplan:
                intensity += SUBPLAN_INTENSITY

        return min(intensity, self.CPU_INTENSITY_CAP)

    def project(
        self: Self,
        cost: ResourceCost,
        executions_per_month: int
    ) -> CostProjection:
        """Project the per-query cost over a month and a year."""

        executions = max(0, executions_per_month)
        monthly_cost = cost.total_cost * executions

        cost_grade = "VERY_HIGH"
        for upper_bound, grade in COST_GRADE_BANDS:
            if monthly_cost < upper_bound:
                cost_grade = grade
                break

        return CostProjection(
            executions_per_month=executions,
            cost_per_query=cost.total_cost,
            monthly_cost=round_cost(monthly_cost),
            yearly_cost=round_cost(monthly_cost * 12),
            cost_grade=cost_grade
        )

    def optimization_advice(self: Self, tree: PlanTree) -> list[str]:
        """Plan-level advice, deduplicated in discovery order."""

        advice: list[str] = []
        engine_cost = tree.total_cost

        for node in tree.root.walk():
            operator = node.operator

            if (
                operator is OperatorKind.SEQ_SCAN and
                node.actual_rows > self.SEQ_SCAN_ROWS_THRESHOLD
            ):
                advice.append(
                    f"Full scan on "
                    f"{node.relation_name or 'a table'}: "
                    f"review candidate indexes"
                )

            if operator is OperatorKind.SORT and node.sorts_on_disk:
                advice.append(
                    "Sort is spilling to disk: increase work_mem"
                )

            if (
                operator is OperatorKind.NESTED_LOOP and
                node.total_cost > engine_cost * EXPENSIVE_NESTED_LOOP_SHARE
            ):
                advice.append(
                    "Expensive nested loop: review join order "
                    "and join-key indexes"
                )

            if (
                operator is OperatorKind.HASH_JOIN and
                node.actual_rows >
                node.plan_rows * HASH_JOIN_ROW_MISESTIMATE_FACTOR
            ):
                advice.append(
                    "Hash join processed far more rows than "
                    "estimated: run ANALYZE to refresh statistics"
                )

        hit_ratio = self._buffer_hit_ratio(tree.nodes())
        if (
            hit_ratio is not None and
            hit_ratio < self.CACHE_HIT_THRESHOLD
        ):
            advice.append(
                "Low buffer cache hit ratio: consider more memory "
                "or better indexes"
            )

        return list(dict.fromkeys(advice))

    def _calculate_cpu_cost(
        self: Self,
        total_time: float,
        nodes: list[PlanNode]
    ) -> float:
        """CPU cost from wall-clock time and plan complexity."""

        total_time_seconds = total_time / 1000.0
        intensity = self.estimate_cpu_intensity(nodes)

        return total_time_seconds * intensity * self.CPU_SECOND_COST

    def _calculate_disk_costs(
        self: Self,
        nodes: list[PlanNode]
    ) -> tuple[float, float]:
        """Read and write cost over every node of the tree."""

        read_blocks = 0
        written_blocks = 0

        for node in nodes:
            read_blocks += node.shared_read_blocks
            written_blocks += (
                node.shared_written_blocks +
                node.shared_dirtied_blocks
            )

        return (
            blocks_to_mb(read_blocks) * self.DISK_READ_MB_COST,
            blocks_to_mb(written_blocks) * self.DISK_WRITE_MB_COST
        )

    def _calculate_sort_hash_cost(self: Self, nodes: list[PlanNode]) -> float:
        total_cost = 0.0

        for node in nodes:
            if node.operator in SORT_HASH_OPERATORS:
                loops = max(1, node.actual_loops)
                total_cost += self.SORT_HASH_OPERATION_COST * loops

        return total_cost

    def _calculate_row_processing_cost(
        self: Self,
        nodes: list[PlanNode]
    ) -> float:
        total_rows = sum(
            node.actual_rows * max(1, node.actual_loops)
            for node in nodes
        )
        return total_rows * self.ROW_PROCESSING_COST

    def _buffer_hit_ratio(
        self: Self,
        nodes: list[PlanNode]
    ) -> Optional[float]:
        """Hit ratio in percent, None when no buffers were touched."""

        reads = sum(node.shared_read_blocks for node in nodes)
        hits = sum(node.shared_hit_blocks for node in nodes)

        if reads + hits == 0:
            return None
        return hits / (reads + hits) * 100

    def _generate_analysis_details(
        self: Self,
        root: PlanNode,
        nodes: list[PlanNode],
        breakdown: dict[str, float],
        total_time: float
    ) -> str:
        """Build the human-readable cost narrative."""

        labels = {
            "cpu": "CPU cost",
            "disk_read": "Disk read cost",
            "disk_write": "Disk write cost",
            "sort_hash": "Sort/hash cost",
            "row_processing": "Row processing cost"
        }
        total = sum(breakdown.values())

        lines = ["=== Query cost analysis ===", ""]
        lines.append(f"Total estimated cost: {total:.6f}")
        lines.append("")
        lines.append("Cost breakdown:")

        for name, value in sorted(
            breakdown.items(), key=lambda item: item[1], reverse=True
        ):
            share = (value / total) * 100 if total > 0 else 0.0
            lines.append(
                f"- {labels[name]}: {value:.6f} ({share:.1f}%)"
            )

        lines.append("")
        lines.append("Execution plan:")
        lines.append(
            f"- Total execution time: {total_time:.2f} ms"
        )
        lines.append(f"- Engine estimated cost: {root.total_cost:.2f}")

        lines.extend(self._describe_significant_nodes(root, nodes))
        lines.extend(self._describe_io_performance(nodes))
        lines.extend(self._describe_optimization_hints(root, nodes))

        return "\n".join(lines)

    def _describe_significant_nodes(
        self: Self,
        root: PlanNode,
        nodes: list[PlanNode]
    ) -> list[str]:
        lines = ["", "Major cost contributors:"]

        if root.total_cost <= 0:
            return lines

        threshold = root.total_cost * SIGNIFICANT_NODE_COST_SHARE
        significant = sorted(
            (node for node in nodes if node.total_cost >= threshold),
            key=lambda node: node.total_cost,
            reverse=True
        )

        for node in significant:
            lines.append(
                f"- {node.node_type} - {self._describe_node(node)} "
                f"(engine cost: {node.total_cost:.2f})"
            )

        return lines

    def _describe_node(self: Self, node: PlanNode) -> str:
        parts: list[str] = []

        if node.relation_name:
            parts.append(f"table {node.relation_name}")
        if node.join_type:
            parts.append(f"({node.join_type} join)")
        if node.actual_rows > 0:
            parts.append(f"{node.actual_rows:,} rows")

        return " ".join(parts) if parts else "data processing"

    def _describe_io_performance(self: Self, nodes: list[PlanNode]) -> list[str]:
        hit_ratio = self._buffer_hit_ratio(nodes)
        if hit_ratio is None:
            return []

        reads = sum(node.shared_read_blocks for node in nodes)
        hits = sum(node.shared_hit_blocks for node in nodes)

        lines = [
            "",
            "I/O performance:",
            f"- Buffer cache hit ratio: {hit_ratio:.1f}%",
            f"- Disk reads: {reads:,} blocks "
            f"({blocks_to_mb(reads):.2f} MB)",
            f"- Cache hits: {hits:,} blocks"
        ]

        if hit_ratio < self.CACHE_HIT_THRESHOLD:
            lines.append(
                "Warning: low cache hit ratio. Consider index "
                "tuning or more memory."
            )

        return lines

    def _describe_optimization_hints(
        self: Self,
        root: PlanNode,
        nodes: list[PlanNode]
    ) -> list[str]:
        has_seq_scan = any(
            node.operator is OperatorKind.SEQ_SCAN and
            node.actual_rows > self.SEQ_SCAN_ROWS_THRESHOLD
            for node in nodes
        )
        has_sort_spill = any(
            node.operator is OperatorKind.SORT and node.sorts_on_disk
            for node in nodes
        )
        has_nested_loop = any(
            node.operator is OperatorKind.NESTED_LOOP and
            node.total_cost > root.total_cost * EXPENSIVE_NESTED_LOOP_SHARE
            for node in nodes
        )

        lines = ["", "Optimization hints:"]

        if has_seq_scan:
            lines.append(
                "- Full table scan detected. Consider adding "
                "an appropriate index."
            )
        if has_sort_spill:
            lines.append(
                "- Sort is using disk. Consider increasing work_mem."
            )
        if has_nested_loop:
            lines.append(
                "- Expensive nested loop join detected. Review "
                "join order and indexes."
            )
        if not (has_seq_scan or has_sort_spill or has_nested_loop):
            lines.append("- The query is already well optimized.")

        return lines


"""Aggregation of plan nodes into resource usage summaries."""


from typing import Self
from dataclasses import dataclass
from plan_tree import PlanNode, PlanTree


@dataclass
class ResourceUsage:
    """
    Resource usage of a node or a whole subtree.
    Buffer counters are subtree sums, actual_time is
    the subtree maximum (wall-clock, not CPU time).
    """
    total_cost: float = 0.0
    plan_rows: int = 0
    plan_width: int = 0
    actual_time: float = 0.0
    shared_blks_hit: int = 0
    shared_blks_read: int = 0
    shared_blks_dirtied: int = 0
    shared_blks_written: int = 0

    @property
    def buffer_hit_ratio(self: Self) -> float:
        """Hit ratio in [0, 1]; 1.0 when no blocks were touched."""

        total = self.shared_blks_hit + self.shared_blks_read
        if total == 0:
            return 1.0
        return self.shared_blks_hit / total


class PlanAggregator:
    """Walks a plan tree and accumulates resource usage."""

    def aggregate(self: Self, node: PlanNode) -> ResourceUsage:
        """Aggregate a node with all of its descendants."""

        usage = ResourceUsage(
            total_cost=node.total_cost,
            plan_rows=node.plan_rows,
            plan_width=node.plan_width,
            actual_time=node.actual_total_time,
            shared_blks_hit=node.shared_hit_blocks,
            shared_blks_read=node.shared_read_blocks,
            shared_blks_dirtied=node.shared_dirtied_blocks,
            shared_blks_written=node.shared_written_blocks
        )

        for child in node.children:
            child_usage = self.aggregate(child)

            usage.shared_blks_hit += child_usage.shared_blks_hit
            usage.shared_blks_read += child_usage.shared_blks_read
            usage.shared_blks_dirtied += child_usage.shared_blks_dirtied
            usage.shared_blks_written += child_usage.shared_blks_written

            # Children may overlap in time, so never sum them
            usage.actual_time = max(
                usage.actual_time, child_usage.actual_time
            )

        return usage

    def aggregate_tree(self: Self, tree: PlanTree) -> ResourceUsage:
        """Aggregate the whole plan, timed by the query if nodes are not."""

        usage = self.aggregate(tree.root)
        if usage.actual_time == 0:
            usage.actual_time = tree.execution_time
        return usage

    def node_list(self: Self, node: PlanNode) -> list[PlanNode]:
        """Flatten a subtree in pre-order, root first."""
        return list(node.walk())

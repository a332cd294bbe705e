"""Tests for subtree resource aggregation."""

from plan_aggregator import PlanAggregator, ResourceUsage
from plan_tree import PlanNode, build_plan_tree


class TestPlanAggregator:

    def test_buffers_are_summed(self, hash_join_tree):
        usage = PlanAggregator().aggregate_tree(hash_join_tree)
        assert usage.shared_blks_hit == 90
        assert usage.shared_blks_read == 20

    def test_time_is_max_not_sum(self, hash_join_tree):
        usage = PlanAggregator().aggregate_tree(hash_join_tree)
        assert usage.actual_time == 45.0

    def test_query_time_when_nodes_are_untimed(self):
        tree = build_plan_tree({
            "Plan": {"Node Type": "Seq Scan", "Total Cost": 1.0},
            "Execution Time": 200.0
        })
        assert PlanAggregator().aggregate_tree(tree).actual_time == 200.0

    def test_node_timing_wins_over_query_time(self, seq_scan_tree):
        usage = PlanAggregator().aggregate_tree(seq_scan_tree)
        assert usage.actual_time == seq_scan_tree.root.actual_total_time

    def test_child_time_can_exceed_parent(self):
        root = PlanNode(
            node_type="Limit",
            actual_total_time=2.0,
            children=(PlanNode(node_type="Seq Scan", actual_total_time=9.0),)
        )
        assert PlanAggregator().aggregate(root).actual_time == 9.0

    def test_estimates_come_from_the_node_itself(self, hash_join_tree):
        usage = PlanAggregator().aggregate_tree(hash_join_tree)
        assert usage.total_cost == 250.0
        assert usage.plan_rows == 1000
        assert usage.plan_width == 48

    def test_subtree_aggregation(self, hash_join_tree):
        hash_node = hash_join_tree.root.children[1]
        usage = PlanAggregator().aggregate(hash_node)
        assert usage.shared_blks_hit == 10
        assert usage.actual_time == 10.0

    def test_node_list_is_pre_order(self, hash_join_tree):
        nodes = PlanAggregator().node_list(hash_join_tree.root)
        assert [node.node_type for node in nodes] == [
            "Hash Join", "Seq Scan", "Hash", "Seq Scan"
        ]


class TestResourceUsage:

    def test_hit_ratio(self):
        usage = ResourceUsage(shared_blks_hit=75, shared_blks_read=25)
        assert usage.buffer_hit_ratio == 0.75

    def test_hit_ratio_without_blocks(self):
        assert ResourceUsage().buffer_hit_ratio == 1.0

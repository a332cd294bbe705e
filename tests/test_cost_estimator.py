"""Tests for monetary cost estimation."""

import dataclasses

import pytest

from cost_estimator import (
    CostEstimator,
    ResourceCost,
    blocks_to_mb,
    round_cost
)
from plan_tree import PlanNode, build_plan_tree


@pytest.fixture
def estimator() -> CostEstimator:
    return CostEstimator()


class TestEstimate:
    """Cost components for whole plans."""

    def test_seq_scan_costs(self, estimator, seq_scan_tree):
        cost = estimator.estimate_tree(seq_scan_tree)

        # 0.12s x intensity 1.0 x 0.005
        assert cost.cpu_cost == pytest.approx(0.0006, abs=1e-6)
        # 200 blocks = 1.5625 MB x 0.0002
        assert cost.io_cost == pytest.approx(0.000313, abs=1e-6)
        assert cost.memory_cost == 0.0
        # 5000 rows x 0.00001
        assert cost.network_cost == pytest.approx(0.05, abs=1e-6)
        assert cost.total_cost == pytest.approx(0.050913, abs=1e-6)

    def test_empty_node_list(self, estimator):
        cost = estimator.estimate([])
        assert cost.total_cost == 0.0
        assert cost.cpu_cost == 0.0
        assert cost.breakdown == {}

    def test_sort_hash_operations(self, estimator, hash_join_tree):
        cost = estimator.estimate_tree(hash_join_tree)
        # Hash Join and Hash, one loop each
        assert cost.memory_cost == pytest.approx(0.004)
        assert cost.breakdown["sort_hash"] == pytest.approx(0.004)

    def test_sort_hash_counts_loops(self, estimator):
        nodes = [PlanNode(node_type="Sort", actual_loops=3)]
        assert estimator.estimate(nodes).memory_cost == pytest.approx(0.006)

    def test_rows_are_multiplied_by_loops(self, estimator):
        nodes = [PlanNode(node_type="Index Scan", actual_rows=10, actual_loops=100)]
        assert estimator.estimate(nodes).network_cost == pytest.approx(0.01)

    def test_writes_include_dirtied_blocks(self, estimator):
        nodes = [PlanNode(
            node_type="Seq Scan",
            shared_written_blocks=64,
            shared_dirtied_blocks=64
        )]
        # 128 blocks = 1 MB x 0.0003
        assert estimator.estimate(nodes).io_cost == pytest.approx(0.0003)

    def test_breakdown_keys(self, estimator, seq_scan_tree):
        cost = estimator.estimate_tree(seq_scan_tree)
        assert set(cost.breakdown) == {
            "cpu", "disk_read", "disk_write", "sort_hash", "row_processing"
        }

    def test_rate_override(self, seq_scan_tree):
        cost = CostEstimator(cpu_second_cost=0.01).estimate_tree(seq_scan_tree)
        assert cost.cpu_cost == pytest.approx(0.0012, abs=1e-6)

    def test_query_time_without_node_timing(self, estimator):
        tree = build_plan_tree({
            "Plan": {"Node Type": "Seq Scan", "Total Cost": 1.0},
            "Execution Time": 200.0
        })
        cost = estimator.estimate_tree(tree)

        # 0.2s x intensity 1.0 x 0.005
        assert cost.cpu_cost == pytest.approx(0.001, abs=1e-6)
        assert "200.00 ms" in cost.analysis_details

    def test_explicit_time_overrides_root(self, estimator):
        nodes = [PlanNode(node_type="Seq Scan", actual_total_time=1000.0)]
        cost = estimator.estimate(nodes, total_time=2000.0)
        assert cost.cpu_cost == pytest.approx(0.01, abs=1e-6)


class TestMonotonicity:
    """Totals only grow as the plan does more work."""

    @pytest.fixture
    def nodes(self) -> list[PlanNode]:
        child = PlanNode(
            node_type="Seq Scan",
            actual_total_time=20.0,
            actual_rows=50,
            actual_loops=1,
            shared_read_blocks=10
        )
        root = PlanNode(
            node_type="Hash Join",
            actual_total_time=40.0,
            actual_rows=100,
            actual_loops=1,
            shared_read_blocks=5,
            shared_written_blocks=2,
            shared_dirtied_blocks=1,
            children=(child,)
        )
        return [root, child]

    @pytest.mark.parametrize("field_name,increase", [
        ("actual_total_time", 500.0),
        ("actual_rows", 10000),
        ("actual_loops", 25),
        ("shared_read_blocks", 4096),
        ("shared_written_blocks", 4096),
        ("shared_dirtied_blocks", 4096),
    ])
    def test_raising_root_field(self, estimator, nodes, field_name, increase):
        root, child = nodes
        base = estimator.estimate(nodes).total_cost

        previous = base
        for step in range(1, 4):
            raised_root = dataclasses.replace(
                root,
                **{field_name: getattr(root, field_name) + increase * step}
            )
            raised = estimator.estimate([raised_root, child]).total_cost
            assert raised >= previous >= 0.0
            previous = raised

        assert previous > base


class TestCpuIntensity:
    """Complexity multiplier for CPU cost."""

    def test_plain_scan(self, estimator):
        assert estimator.estimate_cpu_intensity(
            [PlanNode(node_type="Seq Scan")]
        ) == 1.0

    def test_hash_join(self, estimator, hash_join_tree):
        assert estimator.estimate_cpu_intensity(
            hash_join_tree.nodes()
        ) == pytest.approx(1.4)

    def test_aggregate_and_subplan(self, estimator):
        nodes = [
            PlanNode(node_type="HashAggregate"),
            PlanNode(node_type="Seq Scan", parent_relationship="SubPlan")
        ]
        assert estimator.estimate_cpu_intensity(nodes) == pytest.approx(1.5)

    def test_capped(self, estimator):
        nodes = [PlanNode(node_type="Nested Loop") for _ in range(10)]
        assert estimator.estimate_cpu_intensity(nodes) == 3.0


class TestAnalysisDetails:
    """Human-readable cost narrative."""

    def test_lists_significant_nodes(self, estimator, seq_scan_tree):
        details = estimator.estimate_tree(seq_scan_tree).analysis_details
        assert "Major cost contributors:" in details
        assert "Seq Scan - table orders 5,000 rows" in details

    def test_warns_on_low_hit_ratio(self, estimator, seq_scan_tree):
        details = estimator.estimate_tree(seq_scan_tree).analysis_details
        assert "Buffer cache hit ratio: 20.0%" in details
        assert "Warning: low cache hit ratio" in details

    def test_well_optimized_plan(self, estimator, result_tree):
        details = estimator.estimate_tree(result_tree).analysis_details
        assert "I/O performance" not in details
        assert "already well optimized" in details


class TestProjection:

    def test_monthly_and_yearly(self, estimator):
        projection = estimator.project(ResourceCost(total_cost=0.5), 100_000)
        assert projection.monthly_cost == 50_000.0
        assert projection.yearly_cost == 600_000.0
        assert projection.cost_grade == "MODERATE"

    def test_no_executions(self, estimator):
        projection = estimator.project(ResourceCost(total_cost=0.5), 0)
        assert projection.monthly_cost == 0.0
        assert projection.cost_grade == "VERY_LOW"

    def test_very_high(self, estimator):
        projection = estimator.project(ResourceCost(total_cost=2.0), 1_000_000)
        assert projection.cost_grade == "VERY_HIGH"


class TestOptimizationAdvice:

    def test_seq_scan_advice(self, estimator, seq_scan_tree):
        advice = estimator.optimization_advice(seq_scan_tree)
        assert advice == [
            "Full scan on orders: review candidate indexes",
            "Low buffer cache hit ratio: consider more memory "
            "or better indexes"
        ]

    def test_nested_loop_advice(self, estimator, nested_loop_tree):
        advice = estimator.optimization_advice(nested_loop_tree)
        assert len(advice) == 3
        assert "Sort is spilling to disk: increase work_mem" in advice
        assert any(item.startswith("Expensive nested loop") for item in advice)

    def test_no_advice(self, estimator, result_tree):
        assert estimator.optimization_advice(result_tree) == []


class TestHelpers:

    def test_round_half_up(self):
        assert round_cost(0.0000005) == 0.000001
        assert round_cost(0.0000004) == 0.0

    def test_blocks_to_mb(self):
        assert blocks_to_mb(128) == 1.0

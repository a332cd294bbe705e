"""Pytest configuration and fixtures for plan analyzer tests."""

import pytest
from typing import Any

from plan_tree import PlanTree, build_plan_tree


# =============================================================================
# PLAN DOCUMENT FIXTURES
# =============================================================================

@pytest.fixture
def seq_scan_document() -> list[dict[str, Any]]:
    """Single sequential scan, mostly read from disk."""
    return [{
        "Plan": {
            "Node Type": "Seq Scan",
            "Relation Name": "orders",
            "Alias": "orders",
            "Startup Cost": 0.0,
            "Total Cost": 1500.0,
            "Plan Rows": 5000,
            "Plan Width": 64,
            "Actual Startup Time": 0.0,
            "Actual Total Time": 120.0,
            "Actual Rows": 5000,
            "Actual Loops": 1,
            "Shared Hit Blocks": 50,
            "Shared Read Blocks": 200,
            "Shared Dirtied Blocks": 0,
            "Shared Written Blocks": 0
        },
        "Planning Time": 0.5,
        "Execution Time": 121.0
    }]


@pytest.fixture
def hash_join_document() -> list[dict[str, Any]]:
    """Hash join of orders with customers."""
    return [{
        "Plan": {
            "Node Type": "Hash Join",
            "Join Type": "Inner",
            "Startup Cost": 10.0,
            "Total Cost": 250.0,
            "Plan Rows": 1000,
            "Plan Width": 48,
            "Actual Startup Time": 5.0,
            "Actual Total Time": 45.0,
            "Actual Rows": 1000,
            "Actual Loops": 1,
            "Plans": [
                {
                    "Node Type": "Seq Scan",
                    "Parent Relationship": "Outer",
                    "Relation Name": "orders",
                    "Total Cost": 150.0,
                    "Plan Rows": 1000,
                    "Plan Width": 32,
                    "Actual Startup Time": 0.0,
                    "Actual Total Time": 20.0,
                    "Actual Rows": 1000,
                    "Actual Loops": 1,
                    "Shared Hit Blocks": 80,
                    "Shared Read Blocks": 20
                },
                {
                    "Node Type": "Hash",
                    "Parent Relationship": "Inner",
                    "Total Cost": 50.0,
                    "Plan Rows": 200,
                    "Plan Width": 16,
                    "Actual Startup Time": 9.0,
                    "Actual Total Time": 10.0,
                    "Actual Rows": 200,
                    "Actual Loops": 1,
                    "Plans": [
                        {
                            "Node Type": "Seq Scan",
                            "Parent Relationship": "Outer",
                            "Relation Name": "customers",
                            "Total Cost": 40.0,
                            "Plan Rows": 200,
                            "Plan Width": 16,
                            "Actual Startup Time": 0.1,
                            "Actual Total Time": 8.0,
                            "Actual Rows": 200,
                            "Actual Loops": 1,
                            "Shared Hit Blocks": 10,
                            "Shared Read Blocks": 0
                        }
                    ]
                }
            ]
        },
        "Planning Time": 0.3,
        "Execution Time": 46.0
    }]


@pytest.fixture
def nested_loop_document() -> list[dict[str, Any]]:
    """Sort spilling to disk over a CPU-heavy nested loop."""
    return [{
        "Plan": {
            "Node Type": "Sort",
            "Startup Cost": 880.0,
            "Total Cost": 900.0,
            "Plan Rows": 100,
            "Plan Width": 40,
            "Actual Startup Time": 250.0,
            "Actual Total Time": 310.0,
            "Actual Rows": 100,
            "Actual Loops": 1,
            "Sort Key": ["o.created_at"],
            "Sort Method": "external merge",
            "Sort Space Type": "Disk",
            "Sort Space Used": 2048,
            "Shared Written Blocks": 300,
            "Plans": [
                {
                    "Node Type": "Nested Loop",
                    "Parent Relationship": "Outer",
                    "Join Type": "Inner",
                    "Total Cost": 850.0,
                    "Plan Rows": 100,
                    "Plan Width": 40,
                    "Actual Startup Time": 0.5,
                    "Actual Total Time": 250.0,
                    "Actual Rows": 100,
                    "Actual Loops": 1,
                    "Plans": [
                        {
                            "Node Type": "Seq Scan",
                            "Parent Relationship": "Outer",
                            "Relation Name": "orders",
                            "Alias": "o",
                            "Total Cost": 400.0,
                            "Plan Rows": 2000,
                            "Plan Width": 20,
                            "Actual Startup Time": 0.0,
                            "Actual Total Time": 40.0,
                            "Actual Rows": 2000,
                            "Actual Loops": 1,
                            "Shared Hit Blocks": 30,
                            "Shared Read Blocks": 500
                        },
                        {
                            "Node Type": "Index Scan",
                            "Parent Relationship": "Inner",
                            "Relation Name": "customers",
                            "Alias": "c",
                            "Index Name": "customers_pkey",
                            "Total Cost": 0.2,
                            "Plan Rows": 1,
                            "Plan Width": 20,
                            "Actual Startup Time": 0.01,
                            "Actual Total Time": 0.1,
                            "Actual Rows": 1,
                            "Actual Loops": 2000,
                            "Shared Hit Blocks": 6000,
                            "Shared Read Blocks": 0
                        }
                    ]
                }
            ]
        },
        "Planning Time": 1.2,
        "Execution Time": 311.0
    }]


@pytest.fixture
def seq_scan_tree(seq_scan_document) -> PlanTree:
    return build_plan_tree(seq_scan_document)


@pytest.fixture
def hash_join_tree(hash_join_document) -> PlanTree:
    return build_plan_tree(hash_join_document)


@pytest.fixture
def nested_loop_tree(nested_loop_document) -> PlanTree:
    return build_plan_tree(nested_loop_document)


@pytest.fixture
def result_tree() -> PlanTree:
    """Trivial one-row plan for query text rules."""
    return build_plan_tree({
        "Node Type": "Result",
        "Total Cost": 0.01,
        "Plan Rows": 1,
        "Plan Width": 4,
        "Actual Total Time": 0.01,
        "Actual Rows": 1,
        "Actual Loops": 1
    })

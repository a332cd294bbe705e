"""Rule-based optimization suggestions from query text and plan."""


import re
from typing import Optional, Self
from dataclasses import dataclass
from constants import (
    Defaults,
    SEQ_SCAN_INDEX_COST_THRESHOLD,
    HASH_JOIN_ROW_MISESTIMATE_FACTOR
)
from plan_tree import OperatorKind, PlanTree


LIKE_BOTH_WILDCARDS = re.compile(
    r"LIKE\s+['\"]%.*%['\"]", re.IGNORECASE
)
FUNCTION_ON_COLUMN = re.compile(
    r"WHERE\s+\w+\s*\(.*\)\s*[=<>]", re.IGNORECASE
)
SELECT_STAR = re.compile(r"SELECT\s+\*", re.IGNORECASE)


@dataclass
class OptimizationSuggestion:
    type: str
    description: str
    expected_performance_improvement: float
    suggested_query: Optional[str] = None


class SuggestionEngine:
    """Matches known anti-patterns in a query and its plan."""

    def __init__(
        self: Self,
        large_result_rows_threshold: Optional[int] = None,
        costly_index_scan_threshold: Optional[float] = None
    ) -> None:
        self.LARGE_RESULT_ROWS_THRESHOLD = (
            large_result_rows_threshold or
            Defaults.LARGE_RESULT_ROWS_THRESHOLD
        )
        self.COSTLY_INDEX_SCAN_THRESHOLD = (
            costly_index_scan_threshold or
            Defaults.COSTLY_INDEX_SCAN_THRESHOLD
        )

    def suggest(
        self: Self,
        query_text: str,
        tree: PlanTree
    ) -> list[OptimizationSuggestion]:
        """All suggestions whose pattern fires, in rule order."""

        query = query_text or ""
        upper_query = query.upper()
        suggestions: list[OptimizationSuggestion] = []

        # Index usage
        if tree.contains_operator(OperatorKind.SEQ_SCAN):
            suggestions.append(OptimizationSuggestion(
                "INDEX",
                "Sequential scan found. Indexing the columns used "
                "in WHERE conditions may improve performance.",
                30.0
            ))

        if (
            tree.contains_operator(OperatorKind.INDEX_SCAN) and
            tree.total_cost > self.COSTLY_INDEX_SCAN_THRESHOLD
        ):
            suggestions.append(OptimizationSuggestion(
                "INDEX",
                "Index is used inefficiently. Consider a composite "
                "or covering index.",
                20.0
            ))

        # Joins
        if tree.contains_operator(OperatorKind.NESTED_LOOP):
            suggestions.append(OptimizationSuggestion(
                "JOIN",
                "Nested loop join in use. Index the join keys or "
                "steer the planner towards a hash join.",
                40.0
            ))

        if "JOIN" in upper_query and "ON" not in upper_query:
            suggestions.append(OptimizationSuggestion(
                "JOIN",
                "JOIN without an explicit condition may produce a "
                "cartesian product. Add an ON clause.",
                80.0
            ))

        # WHERE clause
        if LIKE_BOTH_WILDCARDS.search(query):
            suggestions.append(OptimizationSuggestion(
                "WHERE",
                "LIKE pattern with leading and trailing wildcards. "
                "Consider full-text search or a trigram index.",
                25.0
            ))

        if FUNCTION_ON_COLUMN.search(query):
            suggestions.append(OptimizationSuggestion(
                "WHERE",
                "Function applied to a column in WHERE prevents "
                "index use. Rewrite the condition.",
                35.0
            ))

        # SELECT clause
        if SELECT_STAR.search(query):
            suggestions.append(OptimizationSuggestion(
                "SELECT",
                "SELECT * used. Select only the needed columns to "
                "cut memory and network traffic.",
                15.0
            ))

        # General
        if (
            "LIMIT" not in upper_query and
            tree.root.plan_rows > self.LARGE_RESULT_ROWS_THRESHOLD
        ):
            suggestions.append(OptimizationSuggestion(
                "GENERAL",
                "Large result set expected. Add LIMIT and "
                "paginate the results.",
                50.0
            ))

        if "IN (SELECT" in upper_query:
            suggestions.append(OptimizationSuggestion(
                "GENERAL",
                "IN subquery found. Rewriting it with EXISTS or "
                "a JOIN may be faster.",
                30.0
            ))

        return suggestions

    def suggest_indexes(self: Self, tree: PlanTree) -> list[str]:
        """Index and statistics hints from individual plan nodes."""

        hints: list[str] = []

        for node in tree.root.walk():
            operator = node.operator

            if (
                operator is OperatorKind.SEQ_SCAN and
                node.total_cost > SEQ_SCAN_INDEX_COST_THRESHOLD and
                node.relation_name
            ):
                hints.append(
                    f"Consider creating an index on table "
                    f"{node.relation_name}"
                )

            if operator is OperatorKind.SORT and node.sorts_on_disk:
                hints.append(
                    "Sort is using disk. Increase work_mem or "
                    "use an index that provides the order"
                )

            if (
                operator is OperatorKind.HASH_JOIN and
                node.actual_rows >
                node.plan_rows * HASH_JOIN_ROW_MISESTIMATE_FACTOR
            ):
                hints.append(
                    "Hash join processed more rows than estimated. "
                    "Consider updating statistics"
                )

        return hints

"""Execution plan tree model built from EXPLAIN JSON output."""


import math
import logging
from enum import Enum
from typing import Any, Iterator, Optional, Self
from dataclasses import dataclass, field


logger = logging.getLogger(__name__)


class InvalidPlanError(ValueError):
    """Raised when a plan document has no usable root node."""


class OperatorKind(Enum):
    """Operator kinds reported in the "Node Type" field."""

    SEQ_SCAN = "Seq Scan"
    INDEX_SCAN = "Index Scan"
    INDEX_ONLY_SCAN = "Index Only Scan"
    BITMAP_HEAP_SCAN = "Bitmap Heap Scan"
    BITMAP_INDEX_SCAN = "Bitmap Index Scan"
    NESTED_LOOP = "Nested Loop"
    HASH_JOIN = "Hash Join"
    MERGE_JOIN = "Merge Join"
    HASH = "Hash"
    SORT = "Sort"
    INCREMENTAL_SORT = "Incremental Sort"
    AGGREGATE = "Aggregate"
    HASH_AGGREGATE = "HashAggregate"
    GROUP_AGGREGATE = "GroupAggregate"
    WINDOW_AGG = "WindowAgg"
    SUBPLAN = "SubPlan"
    INIT_PLAN = "InitPlan"
    GATHER = "Gather"
    GATHER_MERGE = "Gather Merge"
    MATERIALIZE = "Materialize"
    LIMIT = "Limit"
    RESULT = "Result"
    OTHER = "Other"

    @classmethod
    def from_node_type(cls, node_type: str) -> "OperatorKind":
        """Map a node type string, falling back to OTHER."""

        name = node_type.strip()
        if name.startswith("Parallel "):
            name = name[len("Parallel "):]

        try:
            return cls(name)
        except ValueError:
            return cls.OTHER

    @property
    def is_aggregate(self: Self) -> bool:
        return self in (
            OperatorKind.AGGREGATE,
            OperatorKind.HASH_AGGREGATE,
            OperatorKind.GROUP_AGGREGATE
        )

    @property
    def is_join(self: Self) -> bool:
        return self in (
            OperatorKind.NESTED_LOOP,
            OperatorKind.HASH_JOIN,
            OperatorKind.MERGE_JOIN
        )

    @property
    def is_index_scan(self: Self) -> bool:
        return self in (
            OperatorKind.INDEX_SCAN,
            OperatorKind.INDEX_ONLY_SCAN
        )


@dataclass(frozen=True)
class PlanNode:
    """One operator of an executed plan."""

    node_type: str
    depth: int = 0

    # Planner estimates
    total_cost: float = 0.0
    startup_cost: float = 0.0
    plan_rows: int = 0
    plan_width: int = 0

    # Actual execution statistics
    actual_startup_time: float = 0.0
    actual_total_time: float = 0.0
    actual_rows: int = 0
    actual_loops: int = 0

    # Shared buffer counters
    shared_hit_blocks: int = 0
    shared_read_blocks: int = 0
    shared_dirtied_blocks: int = 0
    shared_written_blocks: int = 0

    # Relation and join details
    relation_name: Optional[str] = None
    alias: Optional[str] = None
    index_name: Optional[str] = None
    join_type: Optional[str] = None
    parent_relationship: Optional[str] = None
    parallel_aware: bool = False

    # Sort details
    sort_keys: tuple[str, ...] = ()
    sort_method: Optional[str] = None
    sort_space_type: Optional[str] = None
    sort_space_used: int = 0

    children: tuple["PlanNode", ...] = field(default_factory=tuple)

    @property
    def operator(self: Self) -> OperatorKind:
        return OperatorKind.from_node_type(self.node_type)

    @property
    def is_leaf(self: Self) -> bool:
        return not self.children

    @property
    def is_parallel(self: Self) -> bool:
        return (
            self.parallel_aware or
            self.node_type.startswith("Parallel ")
        )

    @property
    def is_subplan(self: Self) -> bool:
        return (
            self.operator in (
                OperatorKind.SUBPLAN, OperatorKind.INIT_PLAN
            ) or
            self.parent_relationship in ("SubPlan", "InitPlan")
        )

    @property
    def sorts_on_disk(self: Self) -> bool:
        return (
            self.sort_space_type is not None and
            self.sort_space_type.lower() == "disk"
        )

    @property
    def execution_time(self: Self) -> float:
        """Own actual time (total minus startup), never negative."""
        return max(
            0.0, self.actual_total_time - self.actual_startup_time
        )

    @property
    def display_name(self: Self) -> str:
        """Operator with its index and relation, if any."""

        name = self.node_type
        if self.index_name:
            name += f" using {self.index_name}"
        if self.relation_name:
            name += f" on {self.relation_name}"
        return name

    def walk(self: Self) -> Iterator["PlanNode"]:
        """Yield this node and its descendants in pre-order."""

        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class PlanTree:
    """Parsed plan with the query-level totals."""

    root: PlanNode
    planning_time: float = 0.0
    execution_time: float = 0.0

    @property
    def total_cost(self: Self) -> float:
        return self.root.total_cost

    @property
    def total_time(self: Self) -> float:
        """Wall-clock time of the whole plan in ms."""
        return self.root.actual_total_time or self.execution_time

    def nodes(self: Self) -> list[PlanNode]:
        return list(self.root.walk())

    def contains_operator(self: Self, kind: OperatorKind) -> bool:
        return any(node.operator is kind for node in self.root.walk())


def _as_number(value: Any, cast: type = float) -> Any:
    """Coerce a plan value to a non-negative number."""

    if isinstance(value, bool) or value is None:
        return cast(0)

    try:
        number = cast(value)
    except (TypeError, ValueError, OverflowError):
        return cast(0)

    # json.loads yields inf for 1e400 and Infinity
    if not math.isfinite(number):
        return cast(0)

    return number if number > 0 else cast(0)


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _buffer_value(node: dict[str, Any], key: str) -> int:
    """Read a buffer counter from flat keys or a Buffers object."""

    if key in node:
        return _as_number(node[key], int)

    buffers = node.get("Buffers")
    if isinstance(buffers, dict):
        return _as_number(buffers.get(key), int)

    return 0


def _child_nodes(node: dict[str, Any]) -> list[dict[str, Any]]:
    plans = node.get("Plans")

    if isinstance(plans, list):
        return [plan for plan in plans if isinstance(plan, dict)]

    elif isinstance(plans, dict):
        return [plans]

    return []


def _build_node(node: dict[str, Any], depth: int) -> PlanNode:
    """Recursively build a PlanNode from a plan dict."""

    sort_keys = node.get("Sort Key")
    if isinstance(sort_keys, str):
        sort_keys = (sort_keys,)
    elif not isinstance(sort_keys, (list, tuple)):
        sort_keys = ()

    children = tuple(
        _build_node(child, depth + 1)
        for child in _child_nodes(node)
    )

    return PlanNode(
        node_type=str(node.get("Node Type") or ""),
        depth=depth,
        total_cost=_as_number(node.get("Total Cost")),
        startup_cost=_as_number(node.get("Startup Cost")),
        plan_rows=_as_number(node.get("Plan Rows"), int),
        plan_width=_as_number(node.get("Plan Width"), int),
        actual_startup_time=_as_number(
            node.get("Actual Startup Time")
        ),
        actual_total_time=_as_number(node.get("Actual Total Time")),
        actual_rows=_as_number(node.get("Actual Rows"), int),
        actual_loops=_as_number(node.get("Actual Loops"), int),
        shared_hit_blocks=_buffer_value(node, "Shared Hit Blocks"),
        shared_read_blocks=_buffer_value(node, "Shared Read Blocks"),
        shared_dirtied_blocks=_buffer_value(
            node, "Shared Dirtied Blocks"
        ),
        shared_written_blocks=_buffer_value(
            node, "Shared Written Blocks"
        ),
        relation_name=_as_text(node.get("Relation Name")),
        alias=_as_text(node.get("Alias")),
        index_name=_as_text(node.get("Index Name")),
        join_type=_as_text(node.get("Join Type")),
        parent_relationship=_as_text(node.get("Parent Relationship")),
        parallel_aware=node.get("Parallel Aware") is True,
        sort_keys=tuple(str(key) for key in sort_keys),
        sort_method=_as_text(node.get("Sort Method")),
        sort_space_type=_as_text(node.get("Sort Space Type")),
        sort_space_used=_as_number(node.get("Sort Space Used"), int),
        children=children
    )


def _unwrap_document(document: Any) -> tuple[Any, dict[str, Any]]:
    """Find the root plan dict and its wrapper in a document."""

    wrapper: dict[str, Any] = {}

    if isinstance(document, list):
        if not document:
            return None, wrapper
        document = document[0]

    if isinstance(document, dict) and "Plan" in document:
        wrapper = document
        return document["Plan"], wrapper

    return document, wrapper


def build_plan_tree(document: Any) -> PlanTree:
    """Build a PlanTree from a deserialized EXPLAIN document."""

    plan_data, wrapper = _unwrap_document(document)

    if not isinstance(plan_data, dict) or not plan_data:
        raise InvalidPlanError("Plan document has no root node")

    if "Total Cost" not in plan_data:
        raise InvalidPlanError("Root plan node lacks 'Total Cost'")

    if not plan_data.get("Node Type"):
        raise InvalidPlanError("Root plan node lacks 'Node Type'")

    root = _build_node(plan_data, depth=0)

    logger.debug(
        f"Built plan tree rooted at {root.display_name} "
        f"with {sum(1 for _ in root.walk())} nodes"
    )

    return PlanTree(
        root=root,
        planning_time=_as_number(wrapper.get("Planning Time")),
        execution_time=_as_number(wrapper.get("Execution Time"))
    )

"""Analyzer of executed query plans."""


import logging
import psycopg
from datetime import datetime
from typing import Any, Optional, Self
from dataclasses import dataclass, field, asdict
from advisory import Advisor, AdvisoryAnalysis, request_advisory
from bottleneck_detector import BottleneckDetector, BottleneckPoint
from cost_estimator import CostEstimator, CostProjection, ResourceCost
from database import fetch_execution_plan
from plan_aggregator import PlanAggregator, ResourceUsage
from plan_tree import PlanTree, build_plan_tree
from resource_scorer import (
    ResourceEfficiencyScorer,
    ResourceMetrics,
    generate_resource_report
)
from suggestion_engine import OptimizationSuggestion, SuggestionEngine
from time_series import TimeSeriesMetrics, TimeSeriesReconstructor


logger = logging.getLogger(__name__)


@dataclass
class PlanAnalysisResult:
    """
    Complete analysis of one executed plan.
    Merges cost, efficiency, timeline, bottleneck
    and suggestion outputs for transport.
    """
    query: str
    resource_usage: ResourceUsage
    resource_cost: ResourceCost
    resource_metrics: ResourceMetrics
    time_series: TimeSeriesMetrics
    bottlenecks: list[BottleneckPoint]
    suggestions: list[OptimizationSuggestion]
    advisory: AdvisoryAnalysis

    index_hints: list[str] = field(default_factory=list)
    optimization_advice: list[str] = field(default_factory=list)
    cost_projection: Optional[CostProjection] = None
    resource_report: str = ""

    planning_time: Optional[float] = None
    execution_time: Optional[float] = None
    analysis_timestamp: datetime = field(
        default_factory=datetime.now
    )

    def to_dict(self: Self) -> dict[str, Any]:
        """Convert the analysis result to a dict."""

        result_dict = {
            'query': self.query,
            'performance_metrics': {
                'planning_time': self.planning_time,
                'execution_time': self.execution_time,
                'resource_usage': asdict(self.resource_usage),
                'buffer_hit_ratio': (
                    self.resource_usage.buffer_hit_ratio * 100
                )
            },
            'resource_cost': asdict(self.resource_cost),
            'resource_metrics': asdict(self.resource_metrics),
            'resource_report': self.resource_report,
            'time_series': asdict(self.time_series),
            'bottlenecks': [
                {
                    **asdict(point),
                    'bottleneck_type': point.bottleneck_type.value
                }
                for point in self.bottlenecks
            ],
            'suggestions': [
                asdict(suggestion)
                for suggestion in self.suggestions
            ],
            'index_hints': list(self.index_hints),
            'optimization_advice': list(self.optimization_advice),
            'advisory': asdict(self.advisory),
            'timestamp': self.analysis_timestamp.isoformat()
        }

        if self.cost_projection:
            result_dict['cost_projection'] = asdict(
                self.cost_projection
            )

        return result_dict


class PlanAnalyzer:
    """Runs every analysis over one plan tree."""

    def __init__(
        self: Self,
        cost_estimator: Optional[CostEstimator] = None,
        time_series_reconstructor: Optional[
            TimeSeriesReconstructor
        ] = None,
        bottleneck_detector: Optional[BottleneckDetector] = None,
        suggestion_engine: Optional[SuggestionEngine] = None,
        advisor: Optional[Advisor] = None,
        advisory_timeout_seconds: Optional[float] = None
    ) -> None:
        """Initialization with optional component overrides."""

        self.aggregator = PlanAggregator()
        self.scorer = ResourceEfficiencyScorer()
        self.cost_estimator = cost_estimator or CostEstimator()
        self.reconstructor = (
            time_series_reconstructor or
            TimeSeriesReconstructor()
        )
        self.detector = bottleneck_detector or BottleneckDetector()
        self.suggestion_engine = suggestion_engine or SuggestionEngine()
        self.advisor = advisor
        self.advisory_timeout_seconds = advisory_timeout_seconds

    def analyze(
        self: Self,
        document: Any,
        query_text: str = "",
        executions_per_month: int = 0
    ) -> PlanAnalysisResult:
        """Analyze a deserialized EXPLAIN document."""

        tree = build_plan_tree(document)
        return self.analyze_tree(tree, query_text, executions_per_month)

    def analyze_tree(
        self: Self,
        tree: PlanTree,
        query_text: str = "",
        executions_per_month: int = 0
    ) -> PlanAnalysisResult:
        """Analyze an already built plan tree."""

        logger.info(
            f"Analyzing plan rooted at {tree.root.display_name}"
        )

        usage = self.aggregator.aggregate_tree(tree)
        nodes = self.aggregator.node_list(tree.root)

        cost = self.cost_estimator.estimate(nodes, tree.total_time)
        projection = None
        if executions_per_month > 0:
            projection = self.cost_estimator.project(
                cost, executions_per_month
            )

        metrics = self.scorer.score(usage)

        time_series = self.reconstructor.build_metrics(tree)
        bottlenecks = self.detector.detect(
            time_series.time_points, usage
        )

        suggestions = self.suggestion_engine.suggest(query_text, tree)

        advisory = request_advisory(
            self.advisor,
            {
                'query': query_text,
                'execution_time': tree.total_time,
                'resource_usage': asdict(usage),
                'bottlenecks': [asdict(point) for point in bottlenecks]
            },
            execution_time=tree.total_time,
            bottlenecks=bottlenecks,
            timeout_seconds=self.advisory_timeout_seconds
        )

        logger.info(
            f"Plan analysis completed - "
            f"Grade: {metrics.performance_grade}, "
            f"Cost: {cost.total_cost:.6f}, "
            f"Bottlenecks: {len(bottlenecks)}"
        )

        return PlanAnalysisResult(
            query=query_text,
            resource_usage=usage,
            resource_cost=cost,
            resource_metrics=metrics,
            time_series=time_series,
            bottlenecks=bottlenecks,
            suggestions=suggestions,
            advisory=advisory,
            index_hints=self.suggestion_engine.suggest_indexes(tree),
            optimization_advice=(
                self.cost_estimator.optimization_advice(tree)
            ),
            cost_projection=projection,
            resource_report=generate_resource_report(usage, metrics),
            planning_time=tree.planning_time,
            execution_time=tree.total_time
        )

    def analyze_query(
        self: Self,
        conn: psycopg.Connection,
        sql_query: str,
        executions_per_month: int = 0
    ) -> PlanAnalysisResult:
        """Fetch the executed plan of a query and analyze it."""

        if not sql_query or not sql_query.strip():
            raise ValueError("Query cannot be empty")

        cleaned_query = ' '.join(sql_query.splitlines()).strip()

        try:
            document = fetch_execution_plan(conn, cleaned_query)

        except psycopg.Error as e:
            error_msg = f"Failed to analyze query: {e}"
            if "canceling statement due to statement timeout" in str(e):
                error_msg = (
                    "Query analysis timed out. "
                    "The query may be too complex for analysis."
                )
            raise psycopg.Error(error_msg) from e

        return self.analyze(
            document, cleaned_query, executions_per_month
        )

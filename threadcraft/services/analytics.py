"""
Workflow analytics - read-only insights over workflow snapshots.

Every computation is a pure function of the snapshots it is given (plus the
current time) and never mutates engine state. Empty input yields zero-valued
metrics and empty lists rather than errors. Durations are in seconds.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from threadcraft.domain import (
    BottleneckAnalysis,
    BusinessInsight,
    DemandForecast,
    ImpactLevel,
    InsightType,
    PredictiveAnalytics,
    RiskLevel,
    StepPerformance,
    TransitionPatterns,
    Trend,
    UnknownExpectedDurationError,
    UnknownWorkflowTypeError,
    WorkflowDefinition,
    WorkflowMetrics,
    WorkflowPrediction,
    WorkflowState,
    utcnow,
)

logger = logging.getLogger(__name__)

HOUR = 3600.0

STUCK_THRESHOLD = timedelta(hours=24)
HIGH_IMPACT_DWELL = 72 * HOUR
MEDIUM_IMPACT_DWELL = 24 * HOUR
HIGH_IMPACT_STUCK = 5
MEDIUM_IMPACT_STUCK = 2

REVERSAL_THRESHOLD_PERCENT = 20.0
LOW_SUCCESS_RATE = 80.0
HIGH_RISK_FACTOR = 1.5
HIGH_CONCURRENCY = 10

FORECAST_WINDOW = timedelta(days=30)
TREND_BAND = 0.1

# Expected end-to-end duration per workflow type, used when a definition
# does not declare its own
EXPECTED_COMPLETION_TIMES: Dict[str, timedelta] = {
    "orderFulfillment": timedelta(days=7),
    "supportTicket": timedelta(days=3),
    "customClothingProduction": timedelta(days=14),
}
DEFAULT_EXPECTED_COMPLETION_TIME = timedelta(days=7)

STEP_RECOMMENDATIONS: Dict[str, List[str]] = {
    "payment_pending": [
        "Implement automated payment reminders",
        "Offer multiple payment options",
    ],
    "design": [
        "Pre-approve common design templates",
        "Assign dedicated design resources",
    ],
    "production": [
        "Review production capacity and scheduling",
        "Consider outsourcing during peak periods",
    ],
}


def classify_impact(average_time_spent: float, workflows_stuck: int) -> ImpactLevel:
    """Impact of a step given its average dwell (seconds) and stuck count."""
    if average_time_spent > HIGH_IMPACT_DWELL or workflows_stuck > HIGH_IMPACT_STUCK:
        return ImpactLevel.HIGH
    if average_time_spent > MEDIUM_IMPACT_DWELL or workflows_stuck > MEDIUM_IMPACT_STUCK:
        return ImpactLevel.MEDIUM
    return ImpactLevel.LOW


def bottleneck_recommendations(step_id: str, average_time_spent: float, workflows_stuck: int) -> List[str]:
    recommendations = []

    if average_time_spent > HIGH_IMPACT_DWELL:
        recommendations.append("Consider breaking this step into smaller sub-steps")
        recommendations.append("Investigate automation opportunities")

    if workflows_stuck > HIGH_IMPACT_STUCK:
        recommendations.append("Review step requirements and dependencies")
        recommendations.append("Provide additional training for step handlers")

    recommendations.extend(STEP_RECOMMENDATIONS.get(step_id, []))
    return recommendations


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def iter_visits(workflow: WorkflowState) -> Iterator[Tuple[str, Optional[float], Optional[str]]]:
    """
    Yield (step_id, dwell_seconds, next_step_id) for every step visit.

    A visit's dwell runs from its entry to the next entry. The last visit
    has not ended yet, so its dwell and next step are None.
    """
    history = workflow.history
    for current, following in zip(history, history[1:]):
        yield current.step_id, (following.timestamp - current.timestamp).total_seconds(), following.step_id
    if history:
        yield history[-1].step_id, None, None


def current_dwell(workflow: WorkflowState, definition: WorkflowDefinition, now: datetime) -> Optional[float]:
    """Seconds an active workflow has spent in its current step; None once finished."""
    if definition.is_terminal(workflow.current_step):
        return None
    return max(0.0, (now - workflow.entered_current_step_at).total_seconds())


class WorkflowAnalytics:
    """
    Aggregate insights over batches of workflow snapshots.

    `definitions` is anything exposing `get_definition(workflow_type)` (the
    WorkflowEngine). When an operation is called without explicit
    workflows, they are loaded from `snapshot_source`.
    """

    def __init__(
        self,
        definitions,
        snapshot_source=None,
        clock: Optional[Callable[[], datetime]] = None,
        strict: bool = False,
        default_expected_completion_time: timedelta = DEFAULT_EXPECTED_COMPLETION_TIME,
        stuck_threshold: timedelta = STUCK_THRESHOLD,
    ):
        self.definitions = definitions
        self.snapshot_source = snapshot_source
        self.strict = strict
        self.default_expected_completion_time = default_expected_completion_time
        self.stuck_threshold = stuck_threshold
        self._clock = clock or utcnow

    # ============================================
    # PERFORMANCE
    # ============================================

    def analyze_workflow_performance(
        self,
        workflows: Optional[List[WorkflowState]],
        workflow_type: str,
        now: Optional[datetime] = None,
    ) -> WorkflowMetrics:
        """Analyze completion rates, completion time, bottlenecks and step performance."""
        definition = self.definitions.get_definition(workflow_type)
        workflows = self._resolve(workflows, workflow_type)
        now = now or self._clock()

        terminal = definition.terminal_steps
        completed = [w for w in workflows if w.current_step in terminal]

        total = len(workflows)
        success_rate = (len(completed) / total) * 100 if total > 0 else 0.0

        completion_times = [
            t for t in (self._completion_time(w) for w in completed) if t > 0
        ]

        return WorkflowMetrics(
            total_workflows=total,
            completed_workflows=len(completed),
            average_completion_time=_mean(completion_times),
            success_rate=success_rate,
            bottlenecks=self.identify_bottlenecks(workflows, workflow_type, now=now),
            step_performance=self.analyze_step_performance(workflows, workflow_type),
        )

    def identify_bottlenecks(
        self,
        workflows: Optional[List[WorkflowState]],
        workflow_type: str,
        now: Optional[datetime] = None,
    ) -> List[BottleneckAnalysis]:
        """
        Per-step dwell averages and stuck counts, worst offender first.

        A workflow is stuck in its current step when it is not finished and
        has sat in that step for longer than the stuck threshold. Impact is rated on
        the larger of the step's average dwell and the longest stay of a
        workflow still sitting in it.
        """
        definition = self.definitions.get_definition(workflow_type)
        workflows = self._resolve(workflows, workflow_type)
        now = now or self._clock()

        step_times: Dict[str, List[float]] = {}
        longest_current: Dict[str, float] = {}
        stuck: Dict[str, int] = {}

        for workflow in workflows:
            for step_id, dwell, _ in iter_visits(workflow):
                times = step_times.setdefault(step_id, [])
                if dwell is not None:
                    times.append(dwell)

            dwell = current_dwell(workflow, definition, now)
            if dwell is None:
                continue
            step_id = workflow.current_step
            longest_current[step_id] = max(longest_current.get(step_id, 0.0), dwell)
            if now - workflow.entered_current_step_at > self.stuck_threshold:
                stuck[step_id] = stuck.get(step_id, 0) + 1

        bottlenecks = []
        for step_id, times in step_times.items():
            average = _mean(times)
            longest = longest_current.get(step_id, 0.0)
            workflows_stuck = stuck.get(step_id, 0)
            bottlenecks.append(BottleneckAnalysis(
                step_id=step_id,
                step_name=definition.display_name(step_id),
                average_time_spent=average,
                workflows_stuck=workflows_stuck,
                impact=classify_impact(max(average, longest), workflows_stuck),
                recommendations=bottleneck_recommendations(step_id, max(average, longest), workflows_stuck),
                longest_current_stay=longest,
            ))

        bottlenecks.sort(key=lambda b: b.average_time_spent, reverse=True)
        return bottlenecks

    def analyze_step_performance(
        self,
        workflows: Optional[List[WorkflowState]],
        workflow_type: str,
    ) -> List[StepPerformance]:
        """Visits, time per visit, success rate and common exits for each step."""
        definition = self.definitions.get_definition(workflow_type)
        workflows = self._resolve(workflows, workflow_type)
        failure = definition.failure_steps

        stats: Dict[str, Dict[str, Any]] = {}
        for workflow in workflows:
            succeeded = workflow.current_step not in failure
            for step_id, dwell, next_step in iter_visits(workflow):
                step_stats = stats.setdefault(step_id, {
                    "visits": 0,
                    "times": [],
                    "successes": 0,
                    "exits": {},
                })
                step_stats["visits"] += 1
                if dwell is not None:
                    step_stats["times"].append(dwell)
                if succeeded:
                    step_stats["successes"] += 1
                if next_step is not None:
                    step_stats["exits"][next_step] = step_stats["exits"].get(next_step, 0) + 1

        performance = []
        for step_id, step_stats in stats.items():
            # sorted() is stable, so ties keep first-seen order
            exits = sorted(step_stats["exits"].items(), key=lambda item: item[1], reverse=True)
            performance.append(StepPerformance(
                step_id=step_id,
                step_name=definition.display_name(step_id),
                total_transitions=step_stats["visits"],
                average_time_in_step=_mean(step_stats["times"]),
                success_rate=(step_stats["successes"] / step_stats["visits"]) * 100,
                common_exit_points=[step for step, _ in exits[:3]],
            ))
        return performance

    # ============================================
    # TRANSITION PATTERNS
    # ============================================

    def analyze_transition_patterns(
        self,
        workflows: Optional[List[WorkflowState]],
        workflow_type: str,
    ) -> TransitionPatterns:
        """
        Mine from -> to transition counts, self-loops, the most common paths
        and unusually frequent reversals.
        """
        definition = self.definitions.get_definition(workflow_type)
        workflows = self._resolve(workflows, workflow_type)

        transition_counts: Dict[str, Dict[str, int]] = {}
        loop_detection: Dict[str, int] = {}

        for workflow in workflows:
            for current, following in zip(workflow.history, workflow.history[1:]):
                from_step, to_step = current.step_id, following.step_id
                destinations = transition_counts.setdefault(from_step, {})
                destinations[to_step] = destinations.get(to_step, 0) + 1

                if from_step == to_step:
                    loop_detection[from_step] = loop_detection.get(from_step, 0) + 1

        return TransitionPatterns(
            transition_counts=transition_counts,
            loop_detection=loop_detection,
            most_common_paths=self._most_common_paths(transition_counts),
            unusual_patterns=self._unusual_patterns(transition_counts, definition),
        )

    @staticmethod
    def _most_common_paths(transition_counts: Dict[str, Dict[str, int]]) -> List[Dict[str, Any]]:
        paths = [
            {"path": f"{from_step} → {to_step}", "count": count}
            for from_step, destinations in transition_counts.items()
            for to_step, count in destinations.items()
        ]
        paths.sort(key=lambda p: p["count"], reverse=True)
        return paths[:10]

    @staticmethod
    def _unusual_patterns(
        transition_counts: Dict[str, Dict[str, int]],
        definition: WorkflowDefinition,
    ) -> List[str]:
        patterns = []
        for from_step, destinations in transition_counts.items():
            total = sum(destinations.values())
            for to_step, count in destinations.items():
                percentage = (count / total) * 100
                if definition.is_backward(from_step, to_step) and percentage > REVERSAL_THRESHOLD_PERCENT:
                    patterns.append(
                        f"High reversal rate from {from_step} to {to_step} ({percentage:.1f}%)"
                    )
        return patterns

    # ============================================
    # PREDICTIONS
    # ============================================

    def generate_predictive_analytics(
        self,
        workflows: Optional[List[WorkflowState]],
        workflow_type: str,
        now: Optional[datetime] = None,
    ) -> PredictiveAnalytics:
        """Completion estimates for active workflows plus a demand forecast."""
        definition = self.definitions.get_definition(workflow_type)
        workflows = self._resolve(workflows, workflow_type)
        now = now or self._clock()
        expected = self.expected_completion_time(workflow_type).total_seconds()

        step_averages = {
            s.step_id: s.average_time_in_step
            for s in self.analyze_step_performance(workflows, workflow_type)
        }

        predictions = []
        for workflow in workflows:
            if definition.is_terminal(workflow.current_step):
                continue
            elapsed = (now - workflow.created_at).total_seconds()
            remaining = max(0.0, expected - elapsed)
            predictions.append(WorkflowPrediction(
                workflow_id=workflow.workflow_id,
                current_step=workflow.current_step,
                time_spent_so_far=elapsed,
                estimated_remaining_time=remaining,
                estimated_completion_time=now + timedelta(seconds=remaining),
                average_time_in_current_step=step_averages.get(workflow.current_step, 0.0),
                risk_level=self._assess_risk(elapsed, expected),
            ))

        return PredictiveAnalytics(
            active_predictions=predictions,
            demand_forecast=self.forecast_demand(workflows, now=now),
            resource_recommendations=self._resource_recommendations(predictions),
        )

    @staticmethod
    def _assess_risk(elapsed: float, expected: float) -> RiskLevel:
        if elapsed > expected * HIGH_RISK_FACTOR:
            return RiskLevel.HIGH
        if elapsed > expected:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def forecast_demand(
        self,
        workflows: List[WorkflowState],
        now: Optional[datetime] = None,
    ) -> DemandForecast:
        """Project creation volume from the trailing 30 days."""
        now = now or self._clock()
        window_start = now - FORECAST_WINDOW
        previous_start = window_start - FORECAST_WINDOW

        recent = sum(1 for w in workflows if w.created_at >= window_start)
        previous = sum(1 for w in workflows if previous_start <= w.created_at < window_start)

        daily_average = recent / FORECAST_WINDOW.days
        return DemandForecast(
            daily_average=daily_average,
            projected_weekly=daily_average * 7,
            projected_monthly=daily_average * 30,
            trend=self._trend(recent, previous),
        )

    @staticmethod
    def _trend(recent: int, previous: int) -> Trend:
        if recent > previous * (1 + TREND_BAND):
            return Trend.INCREASING
        if recent < previous * (1 - TREND_BAND):
            return Trend.DECREASING
        return Trend.STABLE

    @staticmethod
    def _resource_recommendations(predictions: List[WorkflowPrediction]) -> List[str]:
        recommendations = []

        high_risk = [p for p in predictions if p.risk_level == RiskLevel.HIGH]
        if high_risk:
            recommendations.append(
                f"{len(high_risk)} workflows are at high risk of delay - consider resource reallocation"
            )

        step_concurrency: Dict[str, int] = {}
        for prediction in predictions:
            step_concurrency[prediction.current_step] = step_concurrency.get(prediction.current_step, 0) + 1

        for step, count in step_concurrency.items():
            if count > HIGH_CONCURRENCY:
                recommendations.append(
                    f"High concurrency in {step} ({count} workflows) - consider additional resources"
                )
        return recommendations

    # ============================================
    # RECOMMENDATIONS
    # ============================================

    def generate_optimization_recommendations(
        self,
        workflows: Optional[List[WorkflowState]],
        workflow_type: str,
        now: Optional[datetime] = None,
    ) -> List[BusinessInsight]:
        """Business insights ranked by impact, highest first."""
        workflows = self._resolve(workflows, workflow_type)
        now = now or self._clock()
        metrics = self.analyze_workflow_performance(workflows, workflow_type, now=now)
        predictive = self.generate_predictive_analytics(workflows, workflow_type, now=now)
        target = self.expected_completion_time(workflow_type).total_seconds()

        insights = []

        if metrics.average_completion_time > target:
            insights.append(BusinessInsight(
                type=InsightType.EFFICIENCY,
                title="Workflow Completion Time Above Target",
                description=(
                    f"Average completion time is {round(metrics.average_completion_time / HOUR)} hours, "
                    f"which exceeds the target of {round(target / HOUR)} hours."
                ),
                impact=ImpactLevel.HIGH,
                action_items=[
                    "Review and optimize slow steps",
                    "Consider automation opportunities",
                    "Streamline approval processes",
                ],
                metrics={
                    "current_time": metrics.average_completion_time,
                    "target_time": target,
                },
            ))

        critical = [b for b in metrics.bottlenecks if b.impact == ImpactLevel.HIGH]
        if critical:
            action_items = []
            for bottleneck in critical:
                for item in bottleneck.recommendations:
                    if item not in action_items:
                        action_items.append(item)
            insights.append(BusinessInsight(
                type=InsightType.BOTTLENECK,
                title="Critical Bottlenecks Identified",
                description=f"{len(critical)} critical bottlenecks are impacting workflow efficiency.",
                impact=ImpactLevel.HIGH,
                action_items=action_items,
                metrics={
                    "bottleneck_count": len(critical),
                    "affected_workflows": sum(b.workflows_stuck for b in critical),
                },
            ))

        if metrics.total_workflows > 0 and metrics.success_rate < LOW_SUCCESS_RATE:
            insights.append(BusinessInsight(
                type=InsightType.EFFICIENCY,
                title="Low Workflow Success Rate",
                description=f"Only {round(metrics.success_rate)}% of workflows complete successfully.",
                impact=ImpactLevel.HIGH,
                action_items=[
                    "Investigate common failure points",
                    "Improve error handling and recovery",
                    "Enhance process documentation and training",
                ],
                metrics={
                    "success_rate": metrics.success_rate,
                    "failed_workflows": metrics.total_workflows - metrics.completed_workflows,
                },
            ))

        forecast = predictive.demand_forecast
        if forecast.trend == Trend.INCREASING:
            insights.append(BusinessInsight(
                type=InsightType.TREND,
                title="Workflow Volume Increasing",
                description=(
                    f"About {forecast.projected_monthly:.0f} new workflows are expected over the next 30 days."
                ),
                impact=ImpactLevel.MEDIUM,
                action_items=[
                    "Plan capacity for the projected volume",
                    "Review staffing for the busiest steps",
                ],
                metrics={
                    "daily_average": forecast.daily_average,
                    "projected_weekly": forecast.projected_weekly,
                    "projected_monthly": forecast.projected_monthly,
                },
            ))

        if predictive.resource_recommendations:
            high_risk = sum(1 for p in predictive.active_predictions if p.risk_level == RiskLevel.HIGH)
            insights.append(BusinessInsight(
                type=InsightType.RECOMMENDATION,
                title="Resource Reallocation Recommended",
                description="Active workflows are at risk of missing their expected completion time.",
                impact=ImpactLevel.HIGH if high_risk else ImpactLevel.MEDIUM,
                action_items=list(predictive.resource_recommendations),
                metrics={
                    "active_workflows": len(predictive.active_predictions),
                    "high_risk_workflows": high_risk,
                },
            ))

        insights.sort(key=lambda i: i.impact.rank, reverse=True)
        return insights

    # ============================================
    # DASHBOARD
    # ============================================

    def get_workflow_analytics(
        self,
        workflow_type: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """All analytics for one workflow type as a JSON-ready dict."""
        workflows = self.load_snapshots(workflow_type, start, end)
        now = now or self._clock()
        return {
            "workflow_type": workflow_type,
            "metrics": self.analyze_workflow_performance(workflows, workflow_type, now=now).to_dict(),
            "patterns": self.analyze_transition_patterns(workflows, workflow_type).to_dict(),
            "predictions": self.generate_predictive_analytics(workflows, workflow_type, now=now).to_dict(),
            "insights": [
                i.to_dict()
                for i in self.generate_optimization_recommendations(workflows, workflow_type, now=now)
            ],
        }

    # ============================================
    # HELPERS
    # ============================================

    def expected_completion_time(self, workflow_type: str) -> timedelta:
        """
        Expected end-to-end duration for a workflow type.

        Looks at the definition first, then the policy table. Unknown types
        fall back to the default (with a warning) or, in strict mode, raise
        UnknownExpectedDurationError.
        """
        try:
            definition = self.definitions.get_definition(workflow_type)
        except UnknownWorkflowTypeError:
            definition = None

        if definition is not None and definition.expected_completion_time is not None:
            return definition.expected_completion_time
        if workflow_type in EXPECTED_COMPLETION_TIMES:
            return EXPECTED_COMPLETION_TIMES[workflow_type]
        if self.strict:
            raise UnknownExpectedDurationError(workflow_type)

        logger.warning(
            f"No expected completion time for '{workflow_type}', "
            f"using default of {self.default_expected_completion_time}"
        )
        return self.default_expected_completion_time

    @staticmethod
    def _completion_time(workflow: WorkflowState) -> float:
        if len(workflow.history) < 2:
            return 0.0
        return (workflow.history[-1].timestamp - workflow.history[0].timestamp).total_seconds()

    def _resolve(self, workflows: Optional[List[WorkflowState]], workflow_type: str) -> List[WorkflowState]:
        if workflows is not None:
            return list(workflows)
        return self.load_snapshots(workflow_type)

    def load_snapshots(
        self,
        workflow_type: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[WorkflowState]:
        if self.snapshot_source is None:
            raise ValueError("No workflows given and no snapshot source configured")
        return self.snapshot_source.list_snapshots(workflow_type, start=start, end=end)

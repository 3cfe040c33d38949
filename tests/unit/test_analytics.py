"""
Unit tests for workflow analytics.
"""

from datetime import timedelta

import pytest

from threadcraft.domain import (
    ImpactLevel,
    InsightType,
    RiskLevel,
    Trend,
    UnknownExpectedDurationError,
    UnknownWorkflowTypeError,
    WorkflowState,
)
from threadcraft.domain.definitions import CUSTOM_CLOTHING_PRODUCTION, ORDER_FULFILLMENT
from threadcraft.persistence import EngineSnapshotRepository, InMemorySnapshotRepository
from threadcraft.services import WorkflowAnalytics
from threadcraft.services.analytics import classify_impact

HOUR = 3600.0


def hours(n):
    return timedelta(hours=n)


@pytest.fixture
def linear_analytics(linear_engine, clock):
    return WorkflowAnalytics(linear_engine, snapshot_source=EngineSnapshotRepository(linear_engine), clock=clock)


@pytest.fixture
def stuck_and_completed(make_workflow, clock):
    """One order stuck in production for 30h and one completed in 2h."""
    now = clock.now
    stuck = make_workflow("stuck", "linear", [
        ("draft", now - hours(32)),
        ("payment_pending", now - hours(31)),
        ("production", now - hours(30)),
    ])
    completed = make_workflow("done", "linear", [
        ("draft", now - hours(50)),
        ("payment_pending", now - hours(49.5)),
        ("production", now - hours(49)),
        ("completed", now - hours(48)),
    ])
    return [stuck, completed]


class TestEmptyInput:
    """Tests that empty input gives zero-valued results."""

    def test_performance(self, linear_analytics):
        metrics = linear_analytics.analyze_workflow_performance([], "linear")

        assert metrics.total_workflows == 0
        assert metrics.completed_workflows == 0
        assert metrics.average_completion_time == 0
        assert metrics.success_rate == 0
        assert metrics.bottlenecks == []
        assert metrics.step_performance == []

    def test_patterns(self, linear_analytics):
        patterns = linear_analytics.analyze_transition_patterns([], "linear")

        assert patterns.transition_counts == {}
        assert patterns.loop_detection == {}
        assert patterns.most_common_paths == []
        assert patterns.unusual_patterns == []

    def test_predictions(self, linear_analytics):
        predictive = linear_analytics.generate_predictive_analytics([], "linear")

        assert predictive.active_predictions == []
        assert predictive.demand_forecast.daily_average == 0
        assert predictive.demand_forecast.trend == Trend.STABLE
        assert predictive.resource_recommendations == []

    def test_recommendations(self, linear_analytics):
        assert linear_analytics.generate_optimization_recommendations([], "linear") == []

    def test_unknown_type(self, linear_analytics):
        with pytest.raises(UnknownWorkflowTypeError):
            linear_analytics.analyze_workflow_performance([], "nonexistent")


class TestPerformance:
    """Tests for completion metrics."""

    def test_one_of_two_completed(self, linear_analytics, stuck_and_completed):
        metrics = linear_analytics.analyze_workflow_performance(stuck_and_completed, "linear")

        assert metrics.total_workflows == 2
        assert metrics.completed_workflows == 1
        assert metrics.success_rate == 50
        assert metrics.average_completion_time == 2 * HOUR

    def test_engine_run_round_trip(self, linear_engine, linear_analytics, clock):
        """Test a workflow driven to a terminal step counts as completed."""
        linear_engine.create_workflow("linear", workflow_id="wf-1")
        for step in ["payment_pending", "production", "completed"]:
            clock.advance(hours=1)
            linear_engine.transition("wf-1", step)

        metrics = linear_analytics.analyze_workflow_performance(None, "linear")

        assert metrics.completed_workflows == 1
        assert metrics.average_completion_time == 3 * HOUR

    def test_cancelled_counts_as_completed(self, analytics, make_workflow, clock):
        workflow = make_workflow("o-1", ORDER_FULFILLMENT, [
            ("draft", clock.now - hours(3)),
            ("cancelled", clock.now - hours(1)),
        ])

        metrics = analytics.analyze_workflow_performance([workflow], ORDER_FULFILLMENT)

        assert metrics.completed_workflows == 1

    def test_zero_length_completions_excluded_from_average(self, analytics, make_workflow, clock):
        """Test workflows created directly in a terminal step do not drag the average down."""
        workflows = [
            make_workflow("o-1", ORDER_FULFILLMENT, [("completed", clock.now)]),
            make_workflow("o-2", ORDER_FULFILLMENT, [
                ("shipping", clock.now - hours(4)),
                ("completed", clock.now),
            ]),
        ]

        metrics = analytics.analyze_workflow_performance(workflows, ORDER_FULFILLMENT)

        assert metrics.completed_workflows == 2
        assert metrics.average_completion_time == 4 * HOUR


class TestBottlenecks:
    """Tests for bottleneck detection."""

    def test_stuck_production_is_medium_impact(self, linear_analytics, stuck_and_completed):
        """Test a step holding a workflow for 30h is flagged."""
        bottlenecks = linear_analytics.identify_bottlenecks(stuck_and_completed, "linear")

        production = next(b for b in bottlenecks if b.step_id == "production")
        assert production.workflows_stuck == 1
        assert production.impact == ImpactLevel.MEDIUM
        assert production.average_time_spent == 1 * HOUR
        assert production.longest_current_stay == 30 * HOUR

    def test_stuck_measured_from_step_entry(self, linear_analytics, clock):
        """Test a stored snapshot touched recently still counts as stuck in its step."""
        snapshot = WorkflowState.from_dict({
            "workflow_id": "stored-1",
            "workflow_type": "linear",
            "current_step": "payment_pending",
            "history": [
                {"step_id": "draft", "timestamp": (clock.now - hours(31)).isoformat(), "action": "workflow_initialized"},
                {"step_id": "payment_pending", "timestamp": (clock.now - hours(30)).isoformat()},
            ],
            "created_at": (clock.now - hours(31)).isoformat(),
            "updated_at": (clock.now - hours(1)).isoformat(),
        })

        bottlenecks = linear_analytics.identify_bottlenecks([snapshot], "linear")

        payment = next(b for b in bottlenecks if b.step_id == "payment_pending")
        assert payment.workflows_stuck == 1
        assert payment.longest_current_stay == 30 * HOUR
        assert payment.impact == ImpactLevel.MEDIUM

    def test_sorted_by_average_dwell(self, linear_analytics, stuck_and_completed):
        bottlenecks = linear_analytics.identify_bottlenecks(stuck_and_completed, "linear")

        averages = [b.average_time_spent for b in bottlenecks]
        assert averages == sorted(averages, reverse=True)
        assert bottlenecks[0].step_id == "production"

    def test_finished_workflows_are_never_stuck(self, linear_analytics, stuck_and_completed):
        bottlenecks = linear_analytics.identify_bottlenecks(stuck_and_completed, "linear")

        completed = next(b for b in bottlenecks if b.step_id == "completed")
        assert completed.workflows_stuck == 0
        assert completed.impact == ImpactLevel.LOW

    def test_many_stuck_is_high_impact(self, analytics, make_workflow, clock):
        workflows = [
            make_workflow(f"o-{i}", ORDER_FULFILLMENT, [
                ("draft", clock.now - hours(27)),
                ("payment_pending", clock.now - hours(26)),
            ])
            for i in range(6)
        ]

        bottlenecks = analytics.identify_bottlenecks(workflows, ORDER_FULFILLMENT)

        payment = next(b for b in bottlenecks if b.step_id == "payment_pending")
        assert payment.workflows_stuck == 6
        assert payment.impact == ImpactLevel.HIGH
        assert "Review step requirements and dependencies" in payment.recommendations
        assert "Implement automated payment reminders" in payment.recommendations

    def test_classify_impact_thresholds(self):
        assert classify_impact(0, 0) == ImpactLevel.LOW
        assert classify_impact(24 * HOUR, 2) == ImpactLevel.LOW
        assert classify_impact(25 * HOUR, 0) == ImpactLevel.MEDIUM
        assert classify_impact(0, 3) == ImpactLevel.MEDIUM
        assert classify_impact(73 * HOUR, 0) == ImpactLevel.HIGH
        assert classify_impact(0, 6) == ImpactLevel.HIGH

    def test_impact_is_monotonic(self):
        """Test more dwell or more stuck workflows never lowers impact."""
        dwells = [0, 10 * HOUR, 24 * HOUR, 30 * HOUR, 72 * HOUR, 100 * HOUR]
        stuck_counts = [0, 1, 2, 3, 5, 6, 10]
        for i, dwell in enumerate(dwells):
            for j, stuck in enumerate(stuck_counts):
                impact = classify_impact(dwell, stuck).rank
                if i + 1 < len(dwells):
                    assert classify_impact(dwells[i + 1], stuck).rank >= impact
                if j + 1 < len(stuck_counts):
                    assert classify_impact(dwell, stuck_counts[j + 1]).rank >= impact


class TestStepPerformance:
    """Tests for per-step performance."""

    @pytest.fixture
    def workflows(self, make_workflow, clock):
        now = clock.now
        return [
            make_workflow("o-1", ORDER_FULFILLMENT, [
                ("draft", now - hours(10)),
                ("payment_pending", now - hours(8)),
                ("cancelled", now - hours(6)),
            ]),
            make_workflow("o-2", ORDER_FULFILLMENT, [
                ("draft", now - hours(10)),
                ("payment_pending", now - hours(9)),
                ("design", now - hours(5)),
            ]),
            make_workflow("o-3", ORDER_FULFILLMENT, [
                ("draft", now - hours(10)),
                ("cancelled", now - hours(7)),
            ]),
        ]

    def test_visits_and_success_rate(self, analytics, workflows):
        performance = {p.step_id: p for p in analytics.analyze_step_performance(workflows, ORDER_FULFILLMENT)}

        draft = performance["draft"]
        assert draft.total_transitions == 3
        assert draft.success_rate == pytest.approx(100 / 3)
        assert draft.average_time_in_step == 2 * HOUR
        assert draft.step_name == "Draft Order"

    def test_common_exit_points(self, analytics, workflows):
        """Test exits are ordered by count with ties in first-seen order."""
        performance = {p.step_id: p for p in analytics.analyze_step_performance(workflows, ORDER_FULFILLMENT)}

        assert performance["draft"].common_exit_points == ["payment_pending", "cancelled"]
        assert performance["payment_pending"].common_exit_points == ["cancelled", "design"]
        assert performance["design"].common_exit_points == []


class TestTransitionPatterns:
    """Tests for transition pattern mining."""

    @pytest.fixture
    def workflows(self, make_workflow, clock):
        now = clock.now
        return [
            make_workflow("o-1", ORDER_FULFILLMENT, [
                ("design", now - hours(10)),
                ("design", now - hours(9)),
                ("production", now - hours(8)),
                ("quality_check", now - hours(7)),
                ("production", now - hours(6)),
                ("quality_check", now - hours(5)),
                ("shipping", now - hours(4)),
            ]),
            make_workflow("o-2", ORDER_FULFILLMENT, [
                ("production", now - hours(8)),
                ("quality_check", now - hours(7)),
                ("shipping", now - hours(6)),
            ]),
        ]

    def test_counts_and_loops(self, analytics, workflows):
        patterns = analytics.analyze_transition_patterns(workflows, ORDER_FULFILLMENT)

        assert patterns.transition_counts["quality_check"] == {"production": 1, "shipping": 2}
        assert patterns.transition_counts["production"] == {"quality_check": 3}
        assert patterns.loop_detection == {"design": 1}

    def test_most_common_paths(self, analytics, workflows):
        patterns = analytics.analyze_transition_patterns(workflows, ORDER_FULFILLMENT)

        assert patterns.most_common_paths[0] == {"path": "production → quality_check", "count": 3}
        assert len(patterns.most_common_paths) <= 10

    def test_reversal_flagged(self, analytics, workflows):
        patterns = analytics.analyze_transition_patterns(workflows, ORDER_FULFILLMENT)

        assert patterns.unusual_patterns == [
            "High reversal rate from quality_check to production (33.3%)"
        ]


class TestPredictions:
    """Tests for completion predictions and demand forecasting."""

    def test_risk_levels_against_expected_duration(self, analytics, make_workflow, clock):
        """Test 20 and 22 days against a 14-day expectation."""
        now = clock.now
        workflows = [
            make_workflow("c-20", CUSTOM_CLOTHING_PRODUCTION, [
                ("inquiry", now - timedelta(days=20)),
                ("production", now - timedelta(days=2)),
            ]),
            make_workflow("c-22", CUSTOM_CLOTHING_PRODUCTION, [
                ("inquiry", now - timedelta(days=22)),
                ("production", now - timedelta(days=2)),
            ]),
        ]

        predictive = analytics.generate_predictive_analytics(workflows, CUSTOM_CLOTHING_PRODUCTION)

        risks = {p.workflow_id: p.risk_level for p in predictive.active_predictions}
        assert risks == {"c-20": RiskLevel.MEDIUM, "c-22": RiskLevel.HIGH}
        for prediction in predictive.active_predictions:
            assert prediction.estimated_remaining_time == 0
            assert prediction.estimated_completion_time == now
        assert predictive.resource_recommendations[0].startswith("1 workflows are at high risk")

    def test_remaining_time(self, analytics, make_workflow, clock):
        workflow = make_workflow("o-1", ORDER_FULFILLMENT, [("draft", clock.now - timedelta(days=2))])

        prediction = analytics.generate_predictive_analytics([workflow], ORDER_FULFILLMENT).active_predictions[0]

        assert prediction.time_spent_so_far == 2 * 24 * HOUR
        assert prediction.estimated_remaining_time == 5 * 24 * HOUR
        assert prediction.estimated_completion_time == clock.now + timedelta(days=5)
        assert prediction.risk_level == RiskLevel.LOW

    def test_finished_workflows_not_predicted(self, analytics, make_workflow, clock):
        workflow = make_workflow("o-1", ORDER_FULFILLMENT, [
            ("shipping", clock.now - hours(5)),
            ("completed", clock.now - hours(1)),
        ])

        assert analytics.generate_predictive_analytics([workflow], ORDER_FULFILLMENT).active_predictions == []

    def test_demand_trend(self, analytics, make_workflow, clock):
        """Test volume growth between 30-day windows."""
        recent = [
            make_workflow(f"r-{i}", ORDER_FULFILLMENT, [("draft", clock.now - timedelta(days=i + 1))])
            for i in range(6)
        ]
        previous = [
            make_workflow(f"p-{i}", ORDER_FULFILLMENT, [("draft", clock.now - timedelta(days=40 + i))])
            for i in range(3)
        ]

        increasing = analytics.forecast_demand(recent + previous)
        decreasing = analytics.forecast_demand(recent[:2] + previous)
        stable = analytics.forecast_demand(recent[:3] + previous)

        assert increasing.trend == Trend.INCREASING
        assert increasing.daily_average == pytest.approx(6 / 30)
        assert increasing.projected_weekly == pytest.approx(6 / 30 * 7)
        assert decreasing.trend == Trend.DECREASING
        assert stable.trend == Trend.STABLE


class TestRecommendations:
    """Tests for business insights."""

    def test_insights_ranked_by_impact(self, analytics, make_workflow, clock):
        now = clock.now
        workflows = [
            make_workflow(f"r-{i}", ORDER_FULFILLMENT, [("draft", now - timedelta(days=1))])
            for i in range(5)
        ] + [
            make_workflow(f"p-{i}", ORDER_FULFILLMENT, [("draft", now - timedelta(days=40))])
            for i in range(2)
        ]

        insights = analytics.generate_optimization_recommendations(workflows, ORDER_FULFILLMENT)

        ranks = [i.impact.rank for i in insights]
        assert ranks == sorted(ranks, reverse=True)
        types = [i.type for i in insights]
        assert InsightType.TREND in types
        assert InsightType.RECOMMENDATION in types
        low_success = next(i for i in insights if i.title == "Low Workflow Success Rate")
        assert low_success.impact == ImpactLevel.HIGH
        assert insights[-1].type == InsightType.TREND
        assert insights[-1].impact == ImpactLevel.MEDIUM

    def test_slow_completion_flagged(self, analytics, make_workflow, clock):
        workflow = make_workflow("o-1", ORDER_FULFILLMENT, [
            ("draft", clock.now - timedelta(days=10)),
            ("completed", clock.now - timedelta(days=1)),
        ])

        insights = analytics.generate_optimization_recommendations([workflow], ORDER_FULFILLMENT)

        efficiency = next(i for i in insights if i.type == InsightType.EFFICIENCY)
        assert efficiency.title == "Workflow Completion Time Above Target"
        assert efficiency.metrics["target_time"] == 7 * 24 * HOUR


class TestExpectedCompletionTime:
    """Tests for expected duration lookup."""

    def test_definition_value(self, analytics):
        assert analytics.expected_completion_time(CUSTOM_CLOTHING_PRODUCTION) == timedelta(days=14)

    def test_unknown_duration_falls_back(self, linear_engine, clock, caplog):
        linear_engine.register_workflow_definition("untimed", {"a": ["b"], "b": []})
        analytics = WorkflowAnalytics(linear_engine, clock=clock)

        assert analytics.expected_completion_time("untimed") == timedelta(days=7)
        assert "No expected completion time" in caplog.text

    def test_unknown_duration_strict(self, linear_engine, clock):
        linear_engine.register_workflow_definition("untimed", {"a": ["b"], "b": []})
        analytics = WorkflowAnalytics(linear_engine, clock=clock, strict=True)

        with pytest.raises(UnknownExpectedDurationError):
            analytics.expected_completion_time("untimed")


class TestSnapshotLoading:
    """Tests for analytics reading from a snapshot source."""

    def test_dashboard_payload(self, engine, clock, make_workflow):
        repo = InMemorySnapshotRepository([
            make_workflow("o-1", ORDER_FULFILLMENT, [("draft", clock.now - hours(2))]),
        ])
        analytics = WorkflowAnalytics(engine, snapshot_source=repo, clock=clock)

        payload = analytics.get_workflow_analytics(ORDER_FULFILLMENT)

        assert payload["workflow_type"] == ORDER_FULFILLMENT
        assert payload["metrics"]["total_workflows"] == 1
        assert len(payload["predictions"]["active_predictions"]) == 1
        assert set(payload) == {"workflow_type", "metrics", "patterns", "predictions", "insights"}

    def test_no_source_configured(self, analytics):
        with pytest.raises(ValueError):
            analytics.analyze_workflow_performance(None, ORDER_FULFILLMENT)

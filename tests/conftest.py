"""
Test configuration and fixtures.

Provides common fixtures for unit and integration tests.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

# Set test environment before importing app modules
os.environ["FLASK_ENV"] = "testing"

from threadcraft.domain import HistoryAction, WorkflowHistoryEntry, WorkflowState  # noqa: E402
from threadcraft.services import WorkflowAnalytics, WorkflowEngine  # noqa: E402

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

# Minimal linear definition used across the engine and analytics tests
LINEAR_STEPS = {
    "draft": ["payment_pending"],
    "payment_pending": ["production"],
    "production": ["completed"],
    "completed": [],
}


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    """Engine with the built-in definitions and a frozen clock."""
    engine = WorkflowEngine(clock=clock)
    engine.register_default_definitions()
    return engine


@pytest.fixture
def linear_engine(clock):
    """Engine with only the minimal linear definition registered."""
    engine = WorkflowEngine(clock=clock)
    engine.register_workflow_definition(
        "linear",
        LINEAR_STEPS,
        start_step="draft",
        canonical_order=["draft", "payment_pending", "production", "completed"],
        expected_completion_time=timedelta(days=7),
    )
    return engine


@pytest.fixture
def analytics(engine, clock):
    return WorkflowAnalytics(engine, clock=clock)


@pytest.fixture
def make_workflow():
    """
    Build a workflow snapshot from (step_id, timestamp) pairs.

    The first pair becomes the initialization entry.
    """
    def _make(workflow_id, workflow_type, visits, **kwargs):
        history = [
            WorkflowHistoryEntry(
                step_id=step_id,
                timestamp=timestamp,
                action=HistoryAction.WORKFLOW_INITIALIZED if i == 0 else HistoryAction.STEP_TRANSITION,
            )
            for i, (step_id, timestamp) in enumerate(visits)
        ]
        return WorkflowState(
            workflow_id=workflow_id,
            workflow_type=workflow_type,
            current_step=history[-1].step_id,
            history=history,
            created_at=history[0].timestamp,
            updated_at=history[-1].timestamp,
            **kwargs,
        )

    return _make


# ============================================
# Integration Test Fixtures
# ============================================

@pytest.fixture
def app(engine, clock):
    """Create Flask test application."""
    from threadcraft.api.app import create_app
    from threadcraft.config import TestConfig
    from threadcraft.persistence import EngineSnapshotRepository

    analytics = WorkflowAnalytics(
        engine, snapshot_source=EngineSnapshotRepository(engine), clock=clock, strict=True,
    )
    app = create_app(TestConfig(), engine=engine, analytics=analytics)
    app.config["TESTING"] = True
    yield app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()

"""
Pytest Configuration and Fixtures

Shared fakes for the Omega pipeline: a scripted reasoning oracle, stores,
context snapshots and ready-made signals.
"""
import json
import os
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

# Add services/core to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'services', 'core'))

from pulse_omega.autonomy.confidence_ledger import ConfidenceLedger  # noqa: E402
from pulse_omega.autonomy.engine import AutonomyEngine  # noqa: E402
from pulse_omega.config import OmegaSettings  # noqa: E402
from pulse_omega.context import StaticContextProvider  # noqa: E402
from pulse_omega.graph.base import PipelineDeps, RunContext  # noqa: E402
from pulse_omega.orchestrator import OmegaPipeline  # noqa: E402
from pulse_omega.persistence.store import InMemoryRecordStore  # noqa: E402
from pulse_omega.schemas import AutonomyRecord, Signal, UserContextSnapshot  # noqa: E402


STAGE_MARKERS = {
    "observe": "Observer module",
    "intent": "Intent Prediction module",
    "draft": "Draft Generation module",
    "diagnose": "Diagnoser module",
    "simulate": "Simulator module",
    "evolve": "Evolver module",
    "guardian": "Guardian module",
}

Response = Union[str, dict, list, Exception, Callable[[str], Any]]


def default_responses() -> Dict[str, Response]:
    """Oracle answers for a clean, low-risk task run."""
    return {
        "observe": {"observations": [{
            "type": "pattern",
            "description": "Weekly sync happens every Monday morning",
            "confidence": 0.8,
            "evidence": "calendar history",
        }]},
        "intent": {
            "predicted_need": "Agenda for the weekly sync",
            "confidence": 0.9,
            "reasoning": "Meeting starts in one hour and has no agenda",
            "suggested_action": "Create an agenda task",
            "draft_type": "task",
            "urgency": "soon",
        },
        "draft": {
            "title": "Prepare weekly sync agenda",
            "draft_type": "task",
            "content": {"body": "List open items for the weekly sync.", "structured": {}},
            "confidence": 0.9,
        },
        "diagnose": {"cognitive_limits": []},
        "simulate": {"simulations": [{
            "scenario": "Agenda shared before the meeting",
            "probability": 0.8,
            "predicted_outcome": "Shorter meeting",
            "risks": [],
            "opportunities": ["Better focus"],
        }], "recommendation": "proceed"},
        "evolve": {"improvements": []},
        "guardian": {
            "approved": True,
            "constraint_checks": [],
            "modifications_required": [],
            "risk_assessment": "low",
            "recommendation": "approve",
        },
    }


class ScriptedOracle:
    """Answers each prompt by the stage it belongs to."""

    def __init__(self, responses: Optional[Dict[str, Response]] = None):
        self.responses = default_responses()
        self.responses.update(responses or {})
        self.calls: List[str] = []

    def stage_of(self, prompt: str) -> str:
        for stage, marker in STAGE_MARKERS.items():
            if marker in prompt:
                return stage
        raise AssertionError(f"Unrecognized prompt: {prompt[:80]}")

    async def invoke(self, prompt: str) -> str:
        stage = self.stage_of(prompt)
        self.calls.append(stage)
        response = self.responses[stage]
        if callable(response) and not isinstance(response, Exception):
            response = response(prompt)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return response
        return json.dumps(response)


class FailingOracle:
    """Every call fails."""

    def __init__(self):
        self.calls = 0

    async def invoke(self, prompt: str) -> str:
        self.calls += 1
        raise RuntimeError("oracle unavailable")


class FailingStore(InMemoryRecordStore):
    """Record store whose writes fail for the listed kinds."""

    def __init__(self, failing=("trace", "cognitive_limit", "improvement")):
        super().__init__()
        self.failing = set(failing)

    async def insert_trace(self, trace):
        if "trace" in self.failing:
            raise ConnectionError("trace table unavailable")
        await super().insert_trace(trace)

    async def insert_cognitive_limit(self, user_id, limit):
        if "cognitive_limit" in self.failing:
            raise ConnectionError("limits table unavailable")
        await super().insert_cognitive_limit(user_id, limit)

    async def insert_improvement(self, user_id, improvement, status="proposed"):
        if "improvement" in self.failing:
            raise ConnectionError("improvements table unavailable")
        await super().insert_improvement(user_id, improvement, status)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings():
    """Fast timeouts for tests."""
    return OmegaSettings(oracle_timeout_s=2.0, persist_timeout_s=2.0)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def signal():
    return Signal(
        user_id="user-1",
        source="calendar",
        signal_type="meeting_upcoming",
        payload={"title": "Weekly sync", "starts_in_minutes": 60},
        created_at=datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def trusted_snapshot():
    """User with a manual autonomy override at level 3."""
    return UserContextSnapshot(
        goals=[{"title": "Run efficient meetings"}],
        preferences={"tone": "concise"},
        autonomy=AutonomyRecord(user_id="user-1", manual_override=3, override_reason="Pilot user"),
    )


@pytest.fixture
def make_run(settings):
    """Build a RunContext around a given oracle, store and snapshot."""
    def _make(oracle=None, store=None, snapshot=None, session_id="session-1"):
        store = store if store is not None else InMemoryRecordStore()
        snapshot = snapshot or UserContextSnapshot()
        ledger = ConfidenceLedger(store, timeout_s=settings.persist_timeout_s)
        deps = PipelineDeps(
            oracle=oracle or ScriptedOracle(),
            store=store,
            ledger=ledger,
            autonomy=AutonomyEngine(),
            settings=settings,
        )
        calibration = ledger.for_user("user-1", snapshot.calibration_history, session_id=session_id)
        return RunContext(deps=deps, snapshot=snapshot, calibration=calibration)

    return _make


@pytest.fixture
def make_pipeline(settings):
    """Build an OmegaPipeline with scripted collaborators."""
    def _make(oracle=None, store=None, snapshot=None, **kwargs):
        provider = StaticContextProvider(default=snapshot or UserContextSnapshot())
        return OmegaPipeline(
            oracle or ScriptedOracle(),
            store=store if store is not None else InMemoryRecordStore(),
            context_provider=provider,
            settings=kwargs.pop("settings", settings),
            **kwargs,
        )

    return _make

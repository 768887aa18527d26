"""
TRACE PERSISTER TESTS

One trace per run; independent best-effort writes; never raises.
"""
import pytest

from pulse_omega.graph.state import apply_update, initial_state
from pulse_omega.persistence.store import InMemoryRecordStore
from pulse_omega.persistence.trace_persister import TracePersister, build_trace_record
from pulse_omega.schemas import CognitiveLimit, Improvement, ReasoningStep
from tests.conftest import FailingStore

pytestmark = pytest.mark.asyncio


def finished_state(errors=()):
    state = initial_state(None, "user-1", session_id="session-1")
    return apply_update(state, {
        "reasoning_trace": [
            ReasoningStep(node="observe", duration_ms=120),
            ReasoningStep(node="diagnose", duration_ms=80),
        ],
        "cognitive_issues": [
            CognitiveLimit(type="timing_error", description="Late"),
            CognitiveLimit(type="domain_weakness", description="Finance"),
        ],
        "proposed_improvements": [
            Improvement(type="prompt_adjustment", target="observer"),
        ],
        "errors": list(errors),
    })


class TestBuildTraceRecord:
    """Trace row contents."""

    async def test_duration_and_success(self):
        trace = build_trace_record(finished_state())
        assert trace.duration_ms == 200
        assert trace.success is True
        assert [s["node"] for s in trace.reasoning_steps] == ["observe", "diagnose"]

    async def test_errors_mark_failure(self):
        trace = build_trace_record(finished_state(errors=["Observer error: x"]))
        assert trace.success is False
        assert trace.output["errors"] == ["Observer error: x"]

    async def test_trace_type(self):
        trace = build_trace_record(finished_state(), trace_type="self_improvement")
        assert trace.trace_type == "self_improvement"


class TestTracePersister:
    """Independent writes."""

    async def test_writes_everything(self):
        store = InMemoryRecordStore()
        assert await TracePersister(store).persist(finished_state())

        assert len(store.traces) == 1
        assert len(store.cognitive_limits) == 2
        assert store.improvements[0]["status"] == "proposed"

    async def test_trace_failure_does_not_block_others(self):
        store = FailingStore(failing={"trace"})
        assert await TracePersister(store).persist(finished_state()) is False

        assert store.traces == []
        assert len(store.cognitive_limits) == 2
        assert len(store.improvements) == 1

    async def test_limit_failure_does_not_block_trace(self):
        store = FailingStore(failing={"cognitive_limit"})
        assert await TracePersister(store).persist(finished_state()) is True

        assert len(store.traces) == 1
        assert store.cognitive_limits == []
        assert len(store.improvements) == 1

    async def test_total_store_failure_never_raises(self):
        store = FailingStore()
        assert await TracePersister(store, timeout_s=0.5).persist(finished_state()) is False

"""
RECORD STORE BOUNDARY

The pipeline writes through ``RecordStore``; every write is best-effort from
its point of view. ``best_effort_write`` is the single place where a write is
awaited with a timeout and any failure is logged instead of propagated.
"""
import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from pulse_omega.logging_config import get_logger
from pulse_omega.schemas import (
    CognitiveLimit,
    ConfidenceEvent,
    Constraint,
    ConstraintViolation,
    Draft,
    Improvement,
    Outcome,
    _new_id,
    utcnow,
)

logger = get_logger(__name__)


class TraceRecord(BaseModel):
    """One row per pipeline run."""
    id: str = Field(default_factory=_new_id)
    user_id: str
    session_id: str
    trace_type: str = "omega_pipeline"
    input_context: Dict[str, Any] = Field(default_factory=dict)
    reasoning_steps: List[Dict[str, Any]] = Field(default_factory=list)
    output: Dict[str, Any] = Field(default_factory=dict)
    duration_ms: int = 0
    success: bool = False
    created_at: datetime = Field(default_factory=utcnow)


@runtime_checkable
class RecordStore(Protocol):
    async def insert_trace(self, trace: TraceRecord) -> None: ...

    async def insert_cognitive_limit(self, user_id: str, limit: CognitiveLimit) -> None: ...

    async def insert_improvement(
        self, user_id: str, improvement: Improvement, status: str = "proposed"
    ) -> None: ...

    async def insert_draft(self, user_id: str, draft: Draft) -> None: ...

    async def get_draft(self, draft_id: str) -> Optional[Draft]: ...

    async def update_draft_status(
        self,
        draft_id: str,
        status: str,
        executed_at: Optional[datetime] = None,
        feedback: Optional[str] = None,
        content: Optional[Dict[str, Any]] = None,
    ) -> None: ...

    async def insert_constraint_violation(self, violation: ConstraintViolation) -> None: ...

    async def insert_confidence_event(self, event: ConfidenceEvent) -> None: ...

    async def update_confidence_outcome(
        self, event_id: str, outcome: str, confidence_error: float
    ) -> None: ...

    async def find_confidence_events(
        self, user_id: str, draft_id: str, intent_id: Optional[str] = None
    ) -> List[ConfidenceEvent]: ...

    async def insert_outcome(self, outcome: Outcome) -> None: ...


@runtime_checkable
class ContextAdmin(Protocol):
    """Writes to the per-user context; used by the admin endpoints, never inside a run."""

    async def list_constraints(self) -> List[Constraint]: ...

    async def add_constraint(self, constraint: Constraint) -> None: ...

    async def upsert_user_context(
        self,
        user_id: str,
        goals: Optional[list] = None,
        preferences: Optional[dict] = None,
        strategies: Optional[list] = None,
    ) -> None: ...

    async def set_autonomy_override(
        self, user_id: str, level: int, reason: str, expires_in_hours: Optional[float] = None
    ) -> None: ...

    async def clear_autonomy_override(self, user_id: str) -> None: ...


def linked_to_draft(event: ConfidenceEvent, draft_id: str, intent_id: Optional[str]) -> bool:
    """Whether a prediction was made about this draft or the intent behind it."""
    context = event.context_snapshot or {}
    if context.get("draft_id") == draft_id:
        return True
    return intent_id is not None and context.get("intent_id") == intent_id


async def best_effort_write(
    kind: str,
    write: Callable[[], Awaitable[Any]],
    timeout_s: float,
    **context: Any,
) -> bool:
    """Run one store write; log and swallow any failure. Returns success."""
    try:
        await asyncio.wait_for(write(), timeout=timeout_s)
        return True
    except asyncio.TimeoutError:
        logger.error("record_write_timeout", kind=kind, timeout_s=timeout_s, **context)
    except Exception as exc:
        logger.error("record_write_failed", kind=kind, error=str(exc), **context)
    return False


# =============================================================================
# In-memory implementation
# =============================================================================

class InMemoryRecordStore:
    """Process-local store for tests and single-process deployments."""

    def __init__(self):
        self.traces: List[TraceRecord] = []
        self.cognitive_limits: List[Dict[str, Any]] = []
        self.improvements: List[Dict[str, Any]] = []
        self.drafts: Dict[str, Dict[str, Any]] = {}
        self.violations: List[ConstraintViolation] = []
        self.confidence_events: Dict[str, ConfidenceEvent] = {}
        self.outcomes: List[Outcome] = []

    async def insert_trace(self, trace: TraceRecord) -> None:
        self.traces.append(trace)

    async def insert_cognitive_limit(self, user_id: str, limit: CognitiveLimit) -> None:
        self.cognitive_limits.append({"user_id": user_id, **limit.model_dump()})

    async def insert_improvement(
        self, user_id: str, improvement: Improvement, status: str = "proposed"
    ) -> None:
        self.improvements.append({"user_id": user_id, "status": status, **improvement.model_dump()})

    async def insert_draft(self, user_id: str, draft: Draft) -> None:
        self.drafts[draft.id] = {"user_id": user_id, "draft": draft, "feedback": None}

    async def get_draft(self, draft_id: str) -> Optional[Draft]:
        row = self.drafts.get(draft_id)
        return row["draft"] if row else None

    async def update_draft_status(
        self,
        draft_id: str,
        status: str,
        executed_at: Optional[datetime] = None,
        feedback: Optional[str] = None,
        content: Optional[Dict[str, Any]] = None,
    ) -> None:
        row = self.drafts.get(draft_id)
        if row is None:
            raise KeyError(f"Unknown draft: {draft_id}")
        changes: Dict[str, Any] = {"status": status}
        if executed_at is not None:
            changes["executed_at"] = executed_at
        if content is not None:
            changes["content"] = content
        row["draft"] = row["draft"].model_copy(update=changes)
        if feedback is not None:
            row["feedback"] = feedback

    async def insert_constraint_violation(self, violation: ConstraintViolation) -> None:
        self.violations.append(violation)

    async def insert_confidence_event(self, event: ConfidenceEvent) -> None:
        self.confidence_events[event.id] = event

    async def update_confidence_outcome(
        self, event_id: str, outcome: str, confidence_error: float
    ) -> None:
        event = self.confidence_events[event_id]
        self.confidence_events[event_id] = event.model_copy(
            update={"outcome": outcome, "confidence_error": confidence_error}
        )

    async def find_confidence_events(
        self, user_id: str, draft_id: str, intent_id: Optional[str] = None
    ) -> List[ConfidenceEvent]:
        return [
            event for event in self.confidence_events.values()
            if event.user_id == user_id and linked_to_draft(event, draft_id, intent_id)
        ]

    async def insert_outcome(self, outcome: Outcome) -> None:
        self.outcomes.append(outcome)

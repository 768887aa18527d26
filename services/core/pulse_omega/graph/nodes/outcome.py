"""
Terminal stages: auto-execution and the human review queue.
"""
from datetime import datetime
from typing import Any, Dict

from pulse_omega.graph.base import RunContext, StageResult, auto_execute_threshold, stage_node
from pulse_omega.graph.stages import Stage
from pulse_omega.graph.state import PipelineState
from pulse_omega.schemas import Draft, ExecutionResult, utcnow

EXECUTION_STATUSES = {
    "email": "queued",
    "task": "created",
    "meeting_prep": "saved",
    "report": "ready",
    "summary": "ready",
    "action_plan": "ready",
}
DEFAULT_EXECUTION_STATUS = "stored"


def execution_result(draft: Draft, executed_at: datetime) -> ExecutionResult:
    """Dispatch on draft type; shared by auto-execution and human approval."""
    return ExecutionResult(
        draft_id=draft.id,
        draft_type=draft.draft_type,
        status=EXECUTION_STATUSES.get(draft.draft_type, DEFAULT_EXECUTION_STATUS),
        executed_at=executed_at,
    )


def _inputs(state: PipelineState) -> Dict[str, Any]:
    draft = state.get("draft")
    return {
        "draft_id": draft.id if draft else None,
        "approved": bool(state.get("approved")),
        "should_auto_execute": bool(state.get("should_auto_execute")),
    }


# =============================================================================
# Executor
# =============================================================================

@stage_node(Stage.EXECUTE, label="Executor", defaults={"should_auto_execute": False}, inputs=_inputs)
async def execute_node(state: PipelineState, run: RunContext) -> StageResult:
    draft = state.get("draft")
    if not (state.get("approved") and state.get("should_auto_execute")):
        return StageResult(
            update={"should_auto_execute": False},
            output={"executed": False},
            error="Executor refused: draft not approved for auto-execution",
        )
    if draft is None:
        return StageResult(
            update={"should_auto_execute": False},
            output={"executed": False},
            error="Executor refused: no draft",
        )

    executed_at = utcnow()
    result = execution_result(draft, executed_at)
    await run.write(
        "draft_status",
        lambda: run.deps.store.update_draft_status(draft.id, "auto_executed", executed_at=executed_at),
        draft_id=draft.id,
        session_id=state.get("session_id"),
    )

    return StageResult(
        update={
            "draft": draft.model_copy(update={"status": "auto_executed", "executed_at": executed_at}),
            "execution_result": result,
        },
        output={"executed": True, "status": result.status, "draft_type": draft.draft_type},
    )


# =============================================================================
# Review queue
# =============================================================================

def review_reason(state: PipelineState, threshold: float) -> str:
    """Human-readable reason the draft needs a person."""
    draft = state.get("draft")
    if draft is None:
        return "No draft produced"

    review = state.get("guardian_review")
    if review is not None and review.modifications_required:
        return "Guardian requires modifications: " + "; ".join(review.modifications_required[:3])

    calibrated = state.get("calibrated_confidence")
    confidence = calibrated if calibrated is not None else draft.confidence
    if confidence < threshold:
        return f"Confidence below threshold ({confidence:.2f} < {threshold:.2f})"

    if not state.get("approved"):
        return "Guardian did not approve"
    return "Awaiting human confirmation"


@stage_node(Stage.QUEUE_FOR_REVIEW, label="Review queue", inputs=_inputs)
async def queue_for_review_node(state: PipelineState, run: RunContext) -> StageResult:
    reason = review_reason(state, auto_execute_threshold(state, run.deps.settings))
    draft = state.get("draft")
    if draft is None:
        return StageResult(
            update={"review_reason": reason, "should_auto_execute": False},
            output={"queued": False, "reason": reason},
        )

    await run.write(
        "draft_status",
        lambda: run.deps.store.update_draft_status(draft.id, "pending_review"),
        draft_id=draft.id,
        session_id=state.get("session_id"),
    )

    return StageResult(
        update={
            "draft": draft.model_copy(update={"status": "pending_review"}),
            "review_reason": reason,
            "should_auto_execute": False,
        },
        output={"queued": True, "draft_id": draft.id, "reason": reason},
    )

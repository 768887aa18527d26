"""
OMEGA API ENDPOINTS

Endpoints:
- POST /omega/signal                        - Run the pipeline for one signal
- POST /omega/drafts/{draft_id}/feedback    - Approve, reject or edit a queued draft
- POST /omega/self-improvement/{user_id}    - Diagnose and propose improvements
- GET  /omega/autonomy/{user_id}            - Effective and earned autonomy
- POST /omega/autonomy/{user_id}/override   - Set a manual override
- DELETE /omega/autonomy/{user_id}/override - Clear the override
- POST /omega/autonomy/{user_id}/check      - Escalation decision for an action
- GET  /omega/constraints                    - List guardian constraints
- POST /omega/constraints                    - Add a guardian constraint
- PUT  /omega/context/{user_id}             - Update goals, preferences, strategies
"""
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from pulse_omega.exceptions import DraftNotFound
from pulse_omega.orchestrator import OmegaPipeline
from pulse_omega.persistence.store import ContextAdmin
from pulse_omega.schemas import ActionDescriptor, Constraint, Signal

router = APIRouter(prefix="/omega", tags=["omega"])


# Request models
class SignalRequest(BaseModel):
    user_id: str
    source: str
    signal_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    metadata: Optional[Dict[str, Any]] = None
    user_context: Dict[str, Any] = Field(default_factory=dict)


class FeedbackRequest(BaseModel):
    user_id: str
    action: Literal["approve", "reject", "edit"]
    feedback: Optional[str] = None
    edited_content: Optional[Dict[str, Any]] = None
    user_rating: Optional[int] = Field(default=None, ge=1, le=5)


class AutonomyOverrideRequest(BaseModel):
    level: int = Field(ge=0, le=3)
    reason: str = Field(min_length=1)
    expires_in_hours: Optional[float] = Field(default=None, gt=0)


class UserContextUpdate(BaseModel):
    goals: Optional[List[Dict[str, Any]]] = None
    preferences: Optional[Dict[str, Any]] = None
    strategies: Optional[List[Dict[str, Any]]] = None


def get_pipeline(request: Request) -> OmegaPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return pipeline


def _dump(value):
    return value.model_dump(mode="json") if value is not None else None


@router.post("/signal")
async def process_signal(request: SignalRequest, pipeline: OmegaPipeline = Depends(get_pipeline)):
    """Run one signal through the pipeline; failures are reported in ``errors``"""
    signal = Signal(
        user_id=request.user_id,
        source=request.source,
        signal_type=request.signal_type,
        payload=request.payload,
        metadata=request.metadata,
    )
    state = await pipeline.process_signal(signal, request.user_id, request.user_context)

    return {
        "status": "ok",
        "session_id": state["session_id"],
        "signal_id": signal.id,
        "intent": _dump(state.get("intent")),
        "draft": _dump(state.get("draft")),
        "approved": state.get("approved", False),
        "auto_executed": state.get("should_auto_execute", False),
        "hard_guard": _dump(state.get("hard_guard")),
        "execution_result": _dump(state.get("execution_result")),
        "review_reason": state.get("review_reason"),
        "errors": state.get("errors", []),
        "steps": [step.node for step in state.get("reasoning_trace") or []],
    }


@router.post("/drafts/{draft_id}/feedback")
async def draft_feedback(
    draft_id: str,
    request: FeedbackRequest,
    pipeline: OmegaPipeline = Depends(get_pipeline),
):
    """Record a human decision on a draft"""
    try:
        result = await pipeline.process_feedback(
            draft_id,
            request.user_id,
            request.action,
            feedback=request.feedback,
            edited_content=request.edited_content,
            user_rating=request.user_rating,
        )
    except DraftNotFound as exc:
        raise HTTPException(status_code=404, detail=exc.to_dict()["error"])

    return {
        "status": "ok",
        "draft_id": draft_id,
        "action": request.action,
        "draft_status": result.draft_status,
        "outcome": result.outcome.model_dump(mode="json"),
        "execution_result": _dump(result.execution_result),
        "calibrated_events": result.calibrated_events,
    }


@router.post("/self-improvement/{user_id}")
async def self_improvement(user_id: str, pipeline: OmegaPipeline = Depends(get_pipeline)):
    """Run the diagnose/evolve loop for a user"""
    result = await pipeline.run_self_improvement_loop(user_id)
    return {"status": "ok", "user_id": user_id, **result}


# =============================================================================
# Autonomy, constraints and user context (admin surface)
# =============================================================================

def get_admin_store(pipeline: OmegaPipeline = Depends(get_pipeline)) -> ContextAdmin:
    store = pipeline.store
    if not isinstance(store, ContextAdmin):
        raise HTTPException(status_code=501, detail="Record store does not support context administration")
    return store


@router.get("/autonomy/{user_id}")
async def get_autonomy(user_id: str, pipeline: OmegaPipeline = Depends(get_pipeline)):
    """Effective and earned autonomy level"""
    status = await pipeline.autonomy_status(user_id)
    return {"status": "ok", "user_id": user_id, **status}


@router.post("/autonomy/{user_id}/override")
async def set_autonomy_override(
    user_id: str,
    request: AutonomyOverrideRequest,
    pipeline: OmegaPipeline = Depends(get_pipeline),
    store: ContextAdmin = Depends(get_admin_store),
):
    """Pin a user's autonomy level, optionally for a limited time"""
    await store.set_autonomy_override(
        user_id, request.level, request.reason, expires_in_hours=request.expires_in_hours
    )
    status = await pipeline.autonomy_status(user_id)
    return {"status": "ok", "user_id": user_id, **status}


@router.delete("/autonomy/{user_id}/override")
async def clear_autonomy_override(
    user_id: str,
    pipeline: OmegaPipeline = Depends(get_pipeline),
    store: ContextAdmin = Depends(get_admin_store),
):
    """Drop the override; the earned level applies again"""
    await store.clear_autonomy_override(user_id)
    status = await pipeline.autonomy_status(user_id)
    return {"status": "ok", "user_id": user_id, **status}


@router.post("/autonomy/{user_id}/check")
async def check_action(
    user_id: str,
    action: ActionDescriptor,
    pipeline: OmegaPipeline = Depends(get_pipeline),
):
    """Escalation decision for an action at the user's current level"""
    decision = await pipeline.check_action(user_id, action)
    return {"status": "ok", "user_id": user_id, "decision": decision.model_dump(mode="json")}


@router.get("/constraints")
async def list_constraints(store: ContextAdmin = Depends(get_admin_store)):
    """All guardian constraints"""
    constraints = await store.list_constraints()
    return {"status": "ok", "constraints": [c.model_dump(mode="json") for c in constraints]}


@router.post("/constraints", status_code=201)
async def add_constraint(constraint: Constraint, store: ContextAdmin = Depends(get_admin_store)):
    """Add a guardian constraint"""
    await store.add_constraint(constraint)
    return {"status": "ok", "constraint": constraint.model_dump(mode="json")}


@router.put("/context/{user_id}")
async def update_user_context(
    user_id: str,
    request: UserContextUpdate,
    store: ContextAdmin = Depends(get_admin_store),
):
    """Replace goals, preferences or strategies; omitted fields are kept"""
    await store.upsert_user_context(
        user_id,
        goals=request.goals,
        preferences=request.preferences,
        strategies=request.strategies,
    )
    return {"status": "ok", "user_id": user_id}

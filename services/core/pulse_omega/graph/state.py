"""
PIPELINE STATE

A single ``PipelineState`` dict is threaded through every stage. Stages never
mutate it; they return partial updates that are folded in by the reducer
attached to each field:

- replace_if_present: singleton fields (intent, draft, flags). ``None`` keeps
  the current value.
- append_if_nonempty: list fields (observations, trace, errors). Empty or
  ``None`` keeps the current list.
- merge_mapping: ``user_context``, shallow-merged.

The same annotations drive LangGraph's channels and ``apply_update`` below,
so both runners fold updates identically.
"""
import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional, TypedDict, get_type_hints

from pulse_omega.schemas import (
    CognitiveLimit,
    Draft,
    EscalationDecision,
    ExecutionResult,
    GuardianReview,
    HardGuardResult,
    Improvement,
    Intent,
    Observation,
    ReasoningStep,
    Signal,
    Simulation,
)


# =============================================================================
# Reducers
# =============================================================================

def replace_if_present(current, update):
    return update if update is not None else current


def append_if_nonempty(current, update):
    if not update:
        return current if current is not None else []
    return list(current or []) + list(update)


def merge_mapping(current, update):
    if not update:
        return current if current is not None else {}
    return {**(current or {}), **update}


# =============================================================================
# State
# =============================================================================

class PipelineState(TypedDict):
    user_id: Annotated[str, replace_if_present]
    session_id: Annotated[str, replace_if_present]
    started_at: Annotated[str, replace_if_present]
    signal: Annotated[Optional[Signal], replace_if_present]
    user_context: Annotated[Dict[str, Any], merge_mapping]

    observations: Annotated[List[Observation], append_if_nonempty]
    intent: Annotated[Optional[Intent], replace_if_present]
    draft: Annotated[Optional[Draft], replace_if_present]

    cognitive_issues: Annotated[List[CognitiveLimit], append_if_nonempty]
    simulations: Annotated[List[Simulation], append_if_nonempty]
    simulation_recommendation: Annotated[Optional[str], replace_if_present]
    proposed_improvements: Annotated[List[Improvement], append_if_nonempty]

    hard_guard: Annotated[Optional[HardGuardResult], replace_if_present]
    escalation: Annotated[Optional[EscalationDecision], replace_if_present]
    autonomy_level: Annotated[Optional[int], replace_if_present]
    calibrated_confidence: Annotated[Optional[float], replace_if_present]
    guardian_review: Annotated[Optional[GuardianReview], replace_if_present]
    approved: Annotated[bool, replace_if_present]
    should_auto_execute: Annotated[bool, replace_if_present]

    execution_result: Annotated[Optional[ExecutionResult], replace_if_present]
    review_reason: Annotated[Optional[str], replace_if_present]

    reasoning_trace: Annotated[List[ReasoningStep], append_if_nonempty]
    errors: Annotated[List[str], append_if_nonempty]


STATE_REDUCERS = {
    name: hint.__metadata__[-1]
    for name, hint in get_type_hints(PipelineState, include_extras=True).items()
}


def initial_state(
    signal: Optional[Signal],
    user_id: str,
    user_context: Optional[Dict[str, Any]] = None,
    session_id: Optional[str] = None,
) -> PipelineState:
    """Empty state for a new run."""
    return PipelineState(
        user_id=user_id,
        session_id=session_id or str(uuid.uuid4()),
        started_at=datetime.now(timezone.utc).isoformat(),
        signal=signal,
        user_context=dict(user_context or {}),
        observations=[],
        intent=None,
        draft=None,
        cognitive_issues=[],
        simulations=[],
        simulation_recommendation=None,
        proposed_improvements=[],
        hard_guard=None,
        escalation=None,
        autonomy_level=None,
        calibrated_confidence=None,
        guardian_review=None,
        approved=False,
        should_auto_execute=False,
        execution_result=None,
        review_reason=None,
        reasoning_trace=[],
        errors=[],
    )


def apply_update(state: PipelineState, update: Optional[Dict[str, Any]]) -> PipelineState:
    """Fold a partial update into ``state`` using the field reducers."""
    merged = dict(state)
    for key, value in (update or {}).items():
        reducer = STATE_REDUCERS.get(key)
        if reducer is None:
            raise KeyError(f"Unknown state field: {key}")
        merged[key] = reducer(merged.get(key), value)
    return merged


def preferences(state: PipelineState) -> Dict[str, Any]:
    """User preferences carried in ``user_context``."""
    prefs = (state.get("user_context") or {}).get("preferences")
    return prefs if isinstance(prefs, dict) else {}

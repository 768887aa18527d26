"""
Pulse Omega Schemas

Records that flow through the pipeline, plus the read-only context snapshot
loaded at the start of every run.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


ObservationType = Literal["pattern", "anomaly", "success", "failure", "opportunity", "risk"]
Urgency = Literal["immediate", "soon", "when_convenient"]
DraftStatus = Literal["pending_review", "approved", "rejected", "auto_executed", "edited"]
LimitType = Literal[
    "prediction_blind_spot", "domain_weakness", "timing_error", "confidence_miscalibration"
]
Severity = Literal["low", "medium", "high"]
ImprovementType = Literal["prompt_adjustment", "strategy_update", "threshold_change", "new_pattern"]
RiskAssessment = Literal["low", "medium", "high"]
Recommendation = Literal["approve", "modify", "reject"]
SimulationRecommendation = Literal["proceed", "modify", "abort"]
EscalationLevel = Literal["hard_block", "soft_block", "observe_only", "full_auto"]
OutcomeType = Literal["success", "partial", "failure", "unknown"]


# =============================================================================
# Trigger
# =============================================================================

class Signal(BaseModel):
    """External event that triggers one pipeline run. Never mutated."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    user_id: str
    source: str
    signal_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# Stage outputs
# =============================================================================

class Observation(BaseModel):
    type: ObservationType
    description: str
    confidence: float = Field(ge=0.0, le=1.0)
    evidence: str = ""


class Intent(BaseModel):
    id: str = Field(default_factory=_new_id)
    signal_id: str
    predicted_need: str
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    suggested_action: str = ""
    draft_type: str = "task"
    urgency: Urgency = "when_convenient"


class Draft(BaseModel):
    id: str = Field(default_factory=_new_id)
    intent_id: str
    draft_type: str
    title: str
    content: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0)
    status: DraftStatus = "pending_review"
    executed_at: Optional[datetime] = None


class CognitiveLimit(BaseModel):
    type: LimitType
    description: str
    severity: Severity = "medium"
    evidence: List[str] = Field(default_factory=list)
    suggested_remedy: str = ""


class Simulation(BaseModel):
    scenario: str
    probability: float = Field(ge=0.0, le=1.0)
    predicted_outcome: str = ""
    risks: List[str] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)


class Improvement(BaseModel):
    type: ImprovementType
    target: str
    current_state: Dict[str, Any] = Field(default_factory=dict)
    proposed_change: Dict[str, Any] = Field(default_factory=dict)
    expected_impact: str = ""
    risk: str = ""


# =============================================================================
# Safety
# =============================================================================

class HardGuardResult(BaseModel):
    hard_approved: bool
    hard_blocks: List[str] = Field(default_factory=list)
    requires_human_review: bool


class ConstraintCheck(BaseModel):
    constraint: str
    passed: bool
    reason: str = ""


class GuardianReview(BaseModel):
    approved: bool
    constraint_checks: List[ConstraintCheck] = Field(default_factory=list)
    modifications_required: List[str] = Field(default_factory=list)
    risk_assessment: RiskAssessment = "medium"
    recommendation: Recommendation = "reject"


class EscalationDecision(BaseModel):
    can_proceed: bool
    requires_confirmation: bool
    observe_only: bool = False
    confirmation_needed: List[str] = Field(default_factory=list)
    blocked_by: List[str] = Field(default_factory=list)
    observing: List[str] = Field(default_factory=list)
    user_autonomy_level: int = 0


class ActionDescriptor(BaseModel):
    type: str
    domain: Optional[str] = None
    confidence: float
    is_irreversible: bool = False


# =============================================================================
# Trace & execution
# =============================================================================

class ReasoningStep(BaseModel):
    node: str
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Dict[str, Any] = Field(default_factory=dict)
    duration_ms: int = 0
    timestamp: datetime = Field(default_factory=utcnow)
    error: Optional[str] = None


class ExecutionResult(BaseModel):
    draft_id: str
    draft_type: str
    status: str
    executed_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# Context snapshot (read-only per run)
# =============================================================================

class ConstraintRule(BaseModel):
    domains: Optional[List[str]] = None
    actions: Optional[List[str]] = None
    action_types: Optional[List[str]] = None
    min_confidence: Optional[float] = None
    requires: Optional[str] = None


class Constraint(BaseModel):
    id: str = Field(default_factory=_new_id)
    constraint_name: str
    constraint_type: str = "safety"
    description: str = ""
    escalation_level: EscalationLevel = "soft_block"
    min_autonomy_level: int = 0
    allows_earned_override: bool = False
    rule: Optional[ConstraintRule] = None


class ConfidenceEvent(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    session_id: Optional[str] = None
    node: str
    prediction_type: str
    predicted_confidence: float
    context_snapshot: Dict[str, Any] = Field(default_factory=dict)
    outcome: Optional[str] = None
    confidence_error: Optional[float] = None
    created_at: datetime = Field(default_factory=utcnow)


class AutonomyRecord(BaseModel):
    user_id: str
    current_level: int = 0
    manual_override: Optional[int] = None
    override_reason: Optional[str] = None
    override_expires_at: Optional[datetime] = None


class Outcome(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    draft_id: Optional[str] = None
    outcome_type: OutcomeType
    draft_type: Optional[str] = None
    user_rating: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class FeedbackResult(BaseModel):
    """What a human decision on a draft did."""
    outcome: Outcome
    draft_status: DraftStatus
    execution_result: Optional[ExecutionResult] = None
    calibrated_events: int = 0


class ConstraintViolation(BaseModel):
    user_id: str
    constraint_id: str
    attempted_action: Dict[str, Any] = Field(default_factory=dict)
    violation_reason: str = ""
    blocked: bool = True


class UserContextSnapshot(BaseModel):
    """Everything the pipeline reads about a user, loaded once per run."""
    goals: List[Dict[str, Any]] = Field(default_factory=list)
    preferences: Dict[str, Any] = Field(default_factory=dict)
    strategies: List[Dict[str, Any]] = Field(default_factory=list)
    recent_outcomes: List[Outcome] = Field(default_factory=list)
    constraints: List[Constraint] = Field(default_factory=list)
    autonomy: Optional[AutonomyRecord] = None
    calibration_history: List[ConfidenceEvent] = Field(default_factory=list)

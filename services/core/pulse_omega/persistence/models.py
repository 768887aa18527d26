import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.sql import func

from pulse_omega.persistence.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Run artifacts (written by the pipeline)
# =============================================================================

class ReasoningTraceRow(Base):
    __tablename__ = "pulse_reasoning_traces"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    session_id = Column(String(64), nullable=False, index=True)
    trace_type = Column(String(50), nullable=False)
    input_context = Column(JSON, nullable=True)
    reasoning_steps = Column(JSON, nullable=True)
    output = Column(JSON, nullable=True)
    duration_ms = Column(Integer, default=0)
    success = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CognitiveLimitRow(Base):
    __tablename__ = "pulse_cognitive_limits"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    limit_type = Column(String(50), nullable=False)
    description = Column(Text, nullable=False)
    evidence = Column(JSON, nullable=True)
    severity = Column(String(10), nullable=False)
    suggested_remedy = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ImprovementRow(Base):
    __tablename__ = "pulse_improvements"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    improvement_type = Column(String(50), nullable=False)
    target_component = Column(String(200), nullable=False)
    current_state = Column(JSON, nullable=True)
    proposed_change = Column(JSON, nullable=True)
    expected_impact = Column(Text, nullable=True)
    risk = Column(Text, nullable=True)
    status = Column(String(20), default="proposed")  # proposed -> reviewed out of band
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class DraftRow(Base):
    __tablename__ = "pulse_drafts"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    intent_id = Column(String(36), nullable=True)
    draft_type = Column(String(50), nullable=False)
    title = Column(String(500), nullable=False)
    content = Column(JSON, nullable=True)
    confidence = Column(Float, default=0.0)
    status = Column(String(20), default="pending_review", index=True)
    user_feedback = Column(Text, nullable=True)
    executed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ConstraintViolationRow(Base):
    __tablename__ = "pulse_constraint_violations"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    constraint_id = Column(String(36), nullable=False)
    attempted_action = Column(JSON, nullable=True)
    violation_reason = Column(Text, nullable=True)
    blocked = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ConfidenceEventRow(Base):
    __tablename__ = "pulse_confidence_events"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    session_id = Column(String(64), nullable=True)
    node = Column(String(50), nullable=False, index=True)
    prediction_type = Column(String(50), nullable=False)
    predicted_confidence = Column(Float, nullable=False)
    context_snapshot = Column(JSON, nullable=True)
    outcome = Column(String(20), nullable=True)
    confidence_error = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class OutcomeRow(Base):
    __tablename__ = "pulse_outcomes"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    draft_id = Column(String(36), nullable=True)
    outcome_type = Column(String(20), nullable=False)
    draft_type = Column(String(50), nullable=True)
    user_rating = Column(Integer, nullable=True)
    user_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


# =============================================================================
# Context (read by the pipeline)
# =============================================================================

class ConstraintRow(Base):
    __tablename__ = "pulse_constraints"
    id = Column(String(36), primary_key=True, default=_uuid)
    constraint_name = Column(String(100), nullable=False, unique=True)
    constraint_type = Column(String(50), default="safety")
    description = Column(Text, nullable=True)
    escalation_level = Column(String(20), default="soft_block")
    min_autonomy_level = Column(Integer, default=0)
    allows_earned_override = Column(Boolean, default=False)
    rule = Column(JSON, nullable=True)


class UserAutonomyRow(Base):
    __tablename__ = "pulse_user_autonomy"
    user_id = Column(String(64), primary_key=True)
    current_level = Column(Integer, default=0)
    manual_override = Column(Integer, nullable=True)
    override_reason = Column(Text, nullable=True)
    override_expires_at = Column(DateTime(timezone=True), nullable=True)


class UserContextRow(Base):
    __tablename__ = "pulse_user_context"
    user_id = Column(String(64), primary_key=True)
    goals = Column(JSON, nullable=True)
    preferences = Column(JSON, nullable=True)
    strategies = Column(JSON, nullable=True)

"""
SQLAlchemy record store.

Implements both the ``RecordStore`` write boundary and the ``ContextProvider``
read boundary on top of one async session factory.

Usage:
    engine = create_engine(settings.database_url)
    store = SQLAlchemyRecordStore(create_session_factory(engine))
    pipeline = OmegaPipeline(oracle, store=store, context_provider=store)
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pulse_omega.logging_config import get_logger
from pulse_omega.persistence.models import (
    CognitiveLimitRow,
    ConfidenceEventRow,
    ConstraintRow,
    ConstraintViolationRow,
    DraftRow,
    ImprovementRow,
    OutcomeRow,
    ReasoningTraceRow,
    UserAutonomyRow,
    UserContextRow,
)
from pulse_omega.persistence.store import TraceRecord, linked_to_draft
from pulse_omega.schemas import (
    AutonomyRecord,
    CognitiveLimit,
    ConfidenceEvent,
    Constraint,
    ConstraintRule,
    ConstraintViolation,
    Draft,
    Improvement,
    Outcome,
    UserContextSnapshot,
    utcnow,
)

logger = get_logger(__name__)


def _constraint(row: ConstraintRow) -> Constraint:
    return Constraint(
        id=row.id,
        constraint_name=row.constraint_name,
        constraint_type=row.constraint_type or "safety",
        description=row.description or "",
        escalation_level=row.escalation_level or "soft_block",
        min_autonomy_level=row.min_autonomy_level or 0,
        allows_earned_override=bool(row.allows_earned_override),
        rule=ConstraintRule(**row.rule) if row.rule else None,
    )


def _confidence_event(row: ConfidenceEventRow) -> ConfidenceEvent:
    return ConfidenceEvent(
        id=row.id,
        user_id=row.user_id,
        session_id=row.session_id,
        node=row.node,
        prediction_type=row.prediction_type,
        predicted_confidence=row.predicted_confidence,
        context_snapshot=row.context_snapshot or {},
        outcome=row.outcome,
        confidence_error=row.confidence_error,
        created_at=row.created_at or utcnow(),
    )


class SQLAlchemyRecordStore:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        recent_outcome_limit: int = 20,
        calibration_history_limit: int = 500,
    ):
        self._session_factory = session_factory
        self.recent_outcome_limit = recent_outcome_limit
        self.calibration_history_limit = calibration_history_limit

    async def _add(self, row) -> None:
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def insert_trace(self, trace: TraceRecord) -> None:
        data = trace.model_dump(mode="json")
        await self._add(ReasoningTraceRow(
            id=trace.id,
            user_id=trace.user_id,
            session_id=trace.session_id,
            trace_type=trace.trace_type,
            input_context=data["input_context"],
            reasoning_steps=data["reasoning_steps"],
            output=data["output"],
            duration_ms=trace.duration_ms,
            success=trace.success,
        ))

    async def insert_cognitive_limit(self, user_id: str, limit: CognitiveLimit) -> None:
        await self._add(CognitiveLimitRow(
            user_id=user_id,
            limit_type=limit.type,
            description=limit.description,
            evidence={"reasoning": limit.evidence},
            severity=limit.severity,
            suggested_remedy=limit.suggested_remedy,
        ))

    async def insert_improvement(
        self, user_id: str, improvement: Improvement, status: str = "proposed"
    ) -> None:
        data = improvement.model_dump(mode="json")
        await self._add(ImprovementRow(
            user_id=user_id,
            improvement_type=improvement.type,
            target_component=improvement.target,
            current_state=data["current_state"],
            proposed_change=data["proposed_change"],
            expected_impact=improvement.expected_impact,
            risk=improvement.risk,
            status=status,
        ))

    async def insert_draft(self, user_id: str, draft: Draft) -> None:
        await self._add(DraftRow(
            id=draft.id,
            user_id=user_id,
            intent_id=draft.intent_id,
            draft_type=draft.draft_type,
            title=draft.title,
            content=draft.model_dump(mode="json")["content"],
            confidence=draft.confidence,
            status=draft.status,
        ))

    async def get_draft(self, draft_id: str) -> Optional[Draft]:
        async with self._session_factory() as session:
            row = await session.get(DraftRow, draft_id)
            if row is None:
                return None
            return Draft(
                id=row.id,
                intent_id=row.intent_id or "",
                draft_type=row.draft_type,
                title=row.title,
                content=row.content or {},
                confidence=row.confidence or 0.0,
                status=row.status,
                executed_at=row.executed_at,
            )

    async def update_draft_status(
        self,
        draft_id: str,
        status: str,
        executed_at: Optional[datetime] = None,
        feedback: Optional[str] = None,
        content: Optional[Dict[str, Any]] = None,
    ) -> None:
        values: Dict[str, Any] = {"status": status}
        if executed_at is not None:
            values["executed_at"] = executed_at
        if feedback is not None:
            values["user_feedback"] = feedback
        if content is not None:
            values["content"] = content

        async with self._session_factory() as session:
            result = await session.execute(
                update(DraftRow).where(DraftRow.id == draft_id).values(**values)
            )
            await session.commit()
            if result.rowcount == 0:
                raise KeyError(f"Unknown draft: {draft_id}")

    async def insert_constraint_violation(self, violation: ConstraintViolation) -> None:
        await self._add(ConstraintViolationRow(
            user_id=violation.user_id,
            constraint_id=violation.constraint_id,
            attempted_action=violation.model_dump(mode="json")["attempted_action"],
            violation_reason=violation.violation_reason,
            blocked=violation.blocked,
        ))

    async def insert_confidence_event(self, event: ConfidenceEvent) -> None:
        await self._add(ConfidenceEventRow(
            id=event.id,
            user_id=event.user_id,
            session_id=event.session_id,
            node=event.node,
            prediction_type=event.prediction_type,
            predicted_confidence=event.predicted_confidence,
            context_snapshot=event.model_dump(mode="json")["context_snapshot"],
            outcome=event.outcome,
            confidence_error=event.confidence_error,
        ))

    async def update_confidence_outcome(
        self, event_id: str, outcome: str, confidence_error: float
    ) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(ConfidenceEventRow)
                .where(ConfidenceEventRow.id == event_id)
                .values(outcome=outcome, confidence_error=confidence_error)
            )
            await session.commit()

    async def find_confidence_events(
        self, user_id: str, draft_id: str, intent_id: Optional[str] = None
    ) -> List[ConfidenceEvent]:
        async with self._session_factory() as session:
            rows = (await session.execute(
                select(ConfidenceEventRow)
                .where(ConfidenceEventRow.user_id == user_id)
                .order_by(ConfidenceEventRow.created_at.desc())
                .limit(self.calibration_history_limit)
            )).scalars().all()
        events = [_confidence_event(row) for row in rows]
        return [event for event in events if linked_to_draft(event, draft_id, intent_id)]

    async def insert_outcome(self, outcome: Outcome) -> None:
        await self._add(OutcomeRow(
            id=outcome.id,
            user_id=outcome.user_id,
            draft_id=outcome.draft_id,
            outcome_type=outcome.outcome_type,
            draft_type=outcome.draft_type,
            user_rating=outcome.user_rating,
            user_notes=outcome.notes,
        ))

    # -------------------------------------------------------------------------
    # Configuration writes (admin surface, not used inside a run)
    # -------------------------------------------------------------------------

    async def list_constraints(self) -> List[Constraint]:
        async with self._session_factory() as session:
            rows = (await session.execute(
                select(ConstraintRow).order_by(ConstraintRow.escalation_level)
            )).scalars().all()
        return [_constraint(row) for row in rows]

    async def add_constraint(self, constraint: Constraint) -> None:
        await self._add(ConstraintRow(
            id=constraint.id,
            constraint_name=constraint.constraint_name,
            constraint_type=constraint.constraint_type,
            description=constraint.description,
            escalation_level=constraint.escalation_level,
            min_autonomy_level=constraint.min_autonomy_level,
            allows_earned_override=constraint.allows_earned_override,
            rule=constraint.rule.model_dump(exclude_none=True) if constraint.rule else None,
        ))

    async def upsert_user_context(
        self,
        user_id: str,
        goals: Optional[list] = None,
        preferences: Optional[dict] = None,
        strategies: Optional[list] = None,
    ) -> None:
        async with self._session_factory() as session:
            row = await session.get(UserContextRow, user_id)
            if row is None:
                row = UserContextRow(user_id=user_id)
                session.add(row)
            if goals is not None:
                row.goals = goals
            if preferences is not None:
                row.preferences = preferences
            if strategies is not None:
                row.strategies = strategies
            await session.commit()

    async def set_autonomy_override(
        self,
        user_id: str,
        level: int,
        reason: str,
        expires_in_hours: Optional[float] = None,
    ) -> None:
        expires_at = (
            datetime.now(timezone.utc) + timedelta(hours=expires_in_hours)
            if expires_in_hours else None
        )
        async with self._session_factory() as session:
            row = await session.get(UserAutonomyRow, user_id)
            if row is None:
                row = UserAutonomyRow(user_id=user_id, current_level=level)
                session.add(row)
            row.manual_override = level
            row.override_reason = reason
            row.override_expires_at = expires_at
            await session.commit()
        logger.info("autonomy_override_set", user_id=user_id, level=level, reason=reason)

    async def clear_autonomy_override(self, user_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(UserAutonomyRow)
                .where(UserAutonomyRow.user_id == user_id)
                .values(manual_override=None, override_reason=None, override_expires_at=None)
            )
            await session.commit()

    # -------------------------------------------------------------------------
    # ContextProvider
    # -------------------------------------------------------------------------

    async def load(self, user_id: str) -> UserContextSnapshot:
        async with self._session_factory() as session:
            context = await session.get(UserContextRow, user_id)
            autonomy = await session.get(UserAutonomyRow, user_id)

            outcomes = (await session.execute(
                select(OutcomeRow)
                .where(OutcomeRow.user_id == user_id)
                .order_by(OutcomeRow.created_at.desc())
                .limit(self.recent_outcome_limit)
            )).scalars().all()

            constraints = (await session.execute(
                select(ConstraintRow).order_by(ConstraintRow.escalation_level)
            )).scalars().all()

            events = (await session.execute(
                select(ConfidenceEventRow)
                .where(ConfidenceEventRow.user_id == user_id)
                .order_by(ConfidenceEventRow.created_at.desc())
                .limit(self.calibration_history_limit)
            )).scalars().all()

        return UserContextSnapshot(
            goals=(context.goals if context else None) or [],
            preferences=(context.preferences if context else None) or {},
            strategies=(context.strategies if context else None) or [],
            recent_outcomes=[
                Outcome(
                    id=row.id,
                    user_id=row.user_id,
                    draft_id=row.draft_id,
                    outcome_type=row.outcome_type,
                    draft_type=row.draft_type,
                    user_rating=row.user_rating,
                    notes=row.user_notes,
                    created_at=row.created_at or utcnow(),
                )
                for row in outcomes
            ],
            constraints=[_constraint(row) for row in constraints],
            autonomy=AutonomyRecord(
                user_id=autonomy.user_id,
                current_level=autonomy.current_level or 0,
                manual_override=autonomy.manual_override,
                override_reason=autonomy.override_reason,
                override_expires_at=autonomy.override_expires_at,
            ) if autonomy else None,
            calibration_history=[_confidence_event(row) for row in events],
        )

"""
SQLALCHEMY STORE TESTS

Runs against SQLite through aiosqlite; same code path as PostgreSQL/asyncpg.
"""
from datetime import datetime, timezone

import pytest

from pulse_omega.persistence.database import (
    close_db_connections,
    create_engine,
    create_session_factory,
    init_models,
)
from pulse_omega.persistence.sql_store import SQLAlchemyRecordStore
from pulse_omega.persistence.store import ContextAdmin, RecordStore, TraceRecord
from pulse_omega.schemas import (
    CognitiveLimit,
    ConfidenceEvent,
    Constraint,
    ConstraintRule,
    Draft,
    Improvement,
    Outcome,
)

pytestmark = pytest.mark.asyncio


async def open_store(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'omega.db'}")
    await init_models(engine)
    return engine, SQLAlchemyRecordStore(create_session_factory(engine))


def make_draft():
    return Draft(
        intent_id="intent-1",
        draft_type="task",
        title="Prepare weekly sync agenda",
        content={"body": "List open items."},
        confidence=0.9,
    )


class TestSQLAlchemyRecordStore:
    """Write boundary."""

    async def test_is_a_record_store(self, tmp_path):
        engine, store = await open_store(tmp_path)
        try:
            assert isinstance(store, RecordStore)
        finally:
            await close_db_connections(engine)

    async def test_draft_lifecycle(self, tmp_path):
        engine, store = await open_store(tmp_path)
        try:
            draft = make_draft()
            await store.insert_draft("user-1", draft)

            executed_at = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
            await store.update_draft_status(draft.id, "auto_executed", executed_at=executed_at)

            loaded = await store.get_draft(draft.id)
            assert loaded.status == "auto_executed"
            assert loaded.executed_at is not None
            assert loaded.content == {"body": "List open items."}
        finally:
            await close_db_connections(engine)

    async def test_unknown_draft(self, tmp_path):
        engine, store = await open_store(tmp_path)
        try:
            assert await store.get_draft("missing") is None
            with pytest.raises(KeyError):
                await store.update_draft_status("missing", "approved")
        finally:
            await close_db_connections(engine)

    async def test_run_artifacts(self, tmp_path):
        engine, store = await open_store(tmp_path)
        try:
            await store.insert_trace(TraceRecord(user_id="user-1", session_id="s-1", success=True))
            await store.insert_cognitive_limit(
                "user-1", CognitiveLimit(type="timing_error", description="Late", evidence=["step 2"])
            )
            await store.insert_improvement(
                "user-1", Improvement(type="new_pattern", target="observer")
            )
        finally:
            await close_db_connections(engine)


class TestContextLoading:
    """Read boundary: the per-run snapshot."""

    async def test_empty_user(self, tmp_path):
        engine, store = await open_store(tmp_path)
        try:
            snapshot = await store.load("nobody")
            assert snapshot.goals == []
            assert snapshot.autonomy is None
            assert snapshot.calibration_history == []
        finally:
            await close_db_connections(engine)

    async def test_full_snapshot(self, tmp_path):
        engine, store = await open_store(tmp_path)
        try:
            await store.upsert_user_context(
                "user-1",
                goals=[{"title": "Ship v2"}],
                preferences={"allow_auto_comms": False},
            )
            await store.add_constraint(Constraint(
                constraint_name="no_auto_email",
                escalation_level="hard_block",
                rule=ConstraintRule(actions=["email"], requires="approval"),
            ))
            await store.set_autonomy_override("user-1", 3, "Pilot", expires_in_hours=24)
            await store.insert_outcome(Outcome(user_id="user-1", outcome_type="success", draft_type="task"))

            event = ConfidenceEvent(
                user_id="user-1", node="draft_generator",
                prediction_type="draft", predicted_confidence=0.8,
            )
            await store.insert_confidence_event(event)
            await store.update_confidence_outcome(event.id, "success", -0.2)

            snapshot = await store.load("user-1")
            assert snapshot.goals == [{"title": "Ship v2"}]
            assert snapshot.preferences == {"allow_auto_comms": False}
            assert snapshot.constraints[0].rule.actions == ["email"]
            assert snapshot.autonomy.manual_override == 3
            assert snapshot.recent_outcomes[0].outcome_type == "success"
            assert snapshot.calibration_history[0].outcome == "success"
        finally:
            await close_db_connections(engine)

    async def test_clear_override(self, tmp_path):
        engine, store = await open_store(tmp_path)
        try:
            await store.set_autonomy_override("user-1", 2, "Trial")
            await store.clear_autonomy_override("user-1")
            snapshot = await store.load("user-1")
            assert snapshot.autonomy.manual_override is None
        finally:
            await close_db_connections(engine)


class TestCalibrationAndAdminReads:
    """Lookups behind feedback calibration and the admin endpoints."""

    async def test_is_a_context_admin(self, tmp_path):
        engine, store = await open_store(tmp_path)
        try:
            assert isinstance(store, ContextAdmin)
        finally:
            await close_db_connections(engine)

    async def test_find_confidence_events_for_draft(self, tmp_path):
        engine, store = await open_store(tmp_path)
        try:
            def event(node, user_id="user-1", **context):
                return ConfidenceEvent(
                    user_id=user_id, node=node, prediction_type=node,
                    predicted_confidence=0.8, context_snapshot=context,
                )

            intent = event("intent_predictor", intent_id="intent-1")
            draft = event("draft_generator", intent_id="intent-1", draft_id="draft-1")
            guardian = event("guardian", draft_id="draft-1")
            other_run = event("guardian", draft_id="draft-2")
            other_user = event("guardian", user_id="user-2", draft_id="draft-1")
            for e in (intent, draft, guardian, other_run, other_user):
                await store.insert_confidence_event(e)

            found = await store.find_confidence_events("user-1", "draft-1", "intent-1")
            assert {e.id for e in found} == {intent.id, draft.id, guardian.id}

            without_intent = await store.find_confidence_events("user-1", "draft-1")
            assert {e.id for e in without_intent} == {draft.id, guardian.id}
        finally:
            await close_db_connections(engine)

    async def test_list_constraints(self, tmp_path):
        engine, store = await open_store(tmp_path)
        try:
            assert await store.list_constraints() == []
            await store.add_constraint(Constraint(
                constraint_name="no_auto_email",
                escalation_level="hard_block",
                rule=ConstraintRule(actions=["email"], requires="approval"),
            ))
            constraints = await store.list_constraints()
            assert [c.constraint_name for c in constraints] == ["no_auto_email"]
            assert constraints[0].rule.requires == "approval"
        finally:
            await close_db_connections(engine)

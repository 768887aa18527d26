"""
AUTONOMY ENGINE TESTS

Level resolution and constraint escalation.
"""
from datetime import datetime, timedelta, timezone

import pytest

from pulse_omega.autonomy.confidence_ledger import ConfidenceLedger
from pulse_omega.autonomy.engine import AutonomyEngine, can_auto_execute, constraint_applies
from pulse_omega.persistence.store import InMemoryRecordStore
from pulse_omega.schemas import (
    ActionDescriptor,
    AutonomyRecord,
    ConfidenceEvent,
    Constraint,
    ConstraintRule,
    UserContextSnapshot,
)

pytestmark = pytest.mark.asyncio


def calibration(history=()):
    return ConfidenceLedger(InMemoryRecordStore()).for_user("user-1", list(history))


def snapshot_with_override(level, expires_at=None):
    return UserContextSnapshot(autonomy=AutonomyRecord(
        user_id="user-1",
        manual_override=level,
        override_reason="Pilot",
        override_expires_at=expires_at,
    ))


def email_action(**overrides):
    data = {"type": "email", "domain": "work", "confidence": 0.9}
    data.update(overrides)
    return ActionDescriptor(**data)


class TestAutonomyLevel:
    """Manual override, expiry and earned fallback."""

    async def test_manual_override_wins(self):
        info = await AutonomyEngine().get_level("user-1", snapshot_with_override(3), calibration())
        assert info.level == 3
        assert info.is_manual_override
        assert info.reason == "Pilot"

    async def test_expired_override_falls_back(self):
        expired = datetime.now(timezone.utc) - timedelta(hours=1)
        info = await AutonomyEngine().get_level(
            "user-1", snapshot_with_override(3, expired), calibration()
        )
        assert info.level == 0
        assert not info.is_manual_override

    async def test_naive_expiry_treated_as_utc(self):
        future = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=2)
        info = await AutonomyEngine().get_level(
            "user-1", snapshot_with_override(2, future), calibration()
        )
        assert info.level == 2

    async def test_earned_level_from_history(self):
        history = [
            ConfidenceEvent(user_id="user-1", node="draft_generator", prediction_type="draft",
                            predicted_confidence=1.0, outcome="success")
            for _ in range(50)
        ]
        info = await AutonomyEngine().get_level("user-1", UserContextSnapshot(), calibration(history))
        assert info.level == 2

    async def test_auto_execute_floor(self):
        assert not can_auto_execute(0)
        assert not can_auto_execute(1)
        assert can_auto_execute(2)
        assert can_auto_execute(3)


class TestConstraintMatching:
    """Rule applicability."""

    async def test_no_rule_never_applies(self):
        assert not constraint_applies(Constraint(constraint_name="free"), email_action())

    async def test_action_list(self):
        rule = ConstraintRule(actions=["email"], requires="confirmation")
        constraint = Constraint(constraint_name="no_auto_email", rule=rule)
        assert constraint_applies(constraint, email_action())
        assert not constraint_applies(constraint, email_action(type="task"))

    async def test_domain_mismatch(self):
        rule = ConstraintRule(domains=["finance"], requires="confirmation")
        constraint = Constraint(constraint_name="finance_only", rule=rule)
        assert not constraint_applies(constraint, email_action(domain="work"))

    async def test_confidence_floor(self):
        rule = ConstraintRule(min_confidence=0.8)
        constraint = Constraint(constraint_name="confident_only", rule=rule)
        assert constraint_applies(constraint, email_action(confidence=0.6))
        assert not constraint_applies(constraint, email_action(confidence=0.9))

    async def test_irreversible_actions(self):
        rule = ConstraintRule(action_types=["delete"])
        constraint = Constraint(constraint_name="no_deletes", rule=rule)
        assert constraint_applies(constraint, email_action(type="delete", is_irreversible=True))


class TestEscalation:
    """Escalation levels map to blocked / confirmation / observing."""

    def constraint(self, name, escalation, **kwargs):
        return Constraint(
            constraint_name=name,
            escalation_level=escalation,
            rule=ConstraintRule(actions=["email"], requires="review"),
            **kwargs,
        )

    async def test_hard_block(self):
        decision = AutonomyEngine().check_escalation(
            email_action(), [self.constraint("never_email", "hard_block")], level=3
        )
        assert not decision.can_proceed
        assert decision.blocked_by == ["never_email"]

    async def test_soft_block_needs_confirmation_below_level(self):
        constraint = self.constraint("confirm_email", "soft_block",
                                     min_autonomy_level=2, allows_earned_override=True)
        decision = AutonomyEngine().check_escalation(email_action(), [constraint], level=1)
        assert decision.can_proceed
        assert decision.requires_confirmation
        assert decision.confirmation_needed == ["confirm_email"]

    async def test_soft_block_earned_override(self):
        constraint = self.constraint("confirm_email", "soft_block",
                                     min_autonomy_level=2, allows_earned_override=True)
        decision = AutonomyEngine().check_escalation(email_action(), [constraint], level=3)
        assert not decision.requires_confirmation
        assert decision.observing == ["confirm_email"]
        assert decision.observe_only

    async def test_full_auto_is_silent(self):
        decision = AutonomyEngine().check_escalation(
            email_action(), [self.constraint("anything_goes", "full_auto")], level=0
        )
        assert decision.can_proceed
        assert not decision.requires_confirmation
        assert decision.observing == []

    async def test_unmatched_constraints_ignored(self):
        decision = AutonomyEngine().check_escalation(
            email_action(type="task"), [self.constraint("never_email", "hard_block")], level=0
        )
        assert decision.can_proceed
        assert decision.blocked_by == []

"""
AUTONOMY / ESCALATION ENGINE

Autonomy levels (ordinal trust tiers):
    0  manual         - every action needs a human
    1  assisted       - suggestions only
    2  collaborative  - low-risk actions may auto-execute
    3  autonomous     - earned full autonomy

Escalation levels on constraints:
    hard_block    -> blocks, never auto-executes
    soft_block    -> needs confirmation unless the user earned an override
    observe_only  -> logged, never blocks
    full_auto     -> no restriction

Auto-execution requires level >= AUTO_EXECUTE_MIN_LEVEL, whatever else holds.
All checks are code-based and deterministic.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from pulse_omega.autonomy.confidence_ledger import UserCalibration
from pulse_omega.logging_config import get_logger
from pulse_omega.schemas import (
    ActionDescriptor,
    Constraint,
    EscalationDecision,
    UserContextSnapshot,
)

logger = get_logger(__name__)


AUTO_EXECUTE_MIN_LEVEL = 2

LEVEL_NAMES = {
    0: "manual",
    1: "assisted",
    2: "collaborative",
    3: "autonomous",
}

IRREVERSIBLE_ACTION_TYPES = ("delete", "terminate", "cancel")


@dataclass
class AutonomyInfo:
    level: int
    reason: str
    is_manual_override: bool = False


def can_auto_execute(level: int) -> bool:
    return level >= AUTO_EXECUTE_MIN_LEVEL


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def constraint_applies(constraint: Constraint, action: ActionDescriptor) -> bool:
    """Whether ``constraint`` restricts ``action``."""
    rule = constraint.rule
    if rule is None:
        return False

    if rule.domains and action.domain and action.domain not in rule.domains:
        return False

    if rule.actions and action.type not in rule.actions:
        return False

    if rule.action_types and action.is_irreversible:
        if any(kind in rule.action_types for kind in IRREVERSIBLE_ACTION_TYPES):
            return True

    if rule.min_confidence and action.confidence < rule.min_confidence:
        return True

    return bool(rule.requires)


class AutonomyEngine:

    async def get_level(
        self,
        user_id: str,
        snapshot: UserContextSnapshot,
        calibration: UserCalibration,
    ) -> AutonomyInfo:
        """Current autonomy level: unexpired manual override, else earned level."""
        try:
            record = snapshot.autonomy
            if record is not None and record.manual_override is not None:
                expires_at = record.override_expires_at
                expired = expires_at is not None and _as_utc(expires_at) < datetime.now(timezone.utc)
                if not expired:
                    return AutonomyInfo(
                        level=record.manual_override,
                        reason=record.override_reason or "Manual override",
                        is_manual_override=True,
                    )

            earned = calibration.earned_autonomy()
            return AutonomyInfo(level=earned.level, reason=earned.reason)
        except Exception as exc:
            logger.error("autonomy_level_failed", user_id=user_id, error=str(exc))
            return AutonomyInfo(level=0, reason="Error evaluating autonomy")

    def check_escalation(
        self,
        action: ActionDescriptor,
        constraints: List[Constraint],
        level: int,
    ) -> EscalationDecision:
        """Match ``action`` against constraints with escalation levels."""
        try:
            blocked_by: List[str] = []
            confirmation_needed: List[str] = []
            observing: List[str] = []

            for constraint in constraints:
                if not constraint_applies(constraint, action):
                    continue

                escalation = constraint.escalation_level
                if escalation == "hard_block":
                    blocked_by.append(constraint.constraint_name)
                elif escalation == "soft_block":
                    if level >= constraint.min_autonomy_level and constraint.allows_earned_override:
                        observing.append(constraint.constraint_name)
                    else:
                        confirmation_needed.append(constraint.constraint_name)
                elif escalation == "observe_only":
                    observing.append(constraint.constraint_name)

            return EscalationDecision(
                can_proceed=not blocked_by,
                requires_confirmation=bool(confirmation_needed),
                observe_only=not blocked_by and not confirmation_needed and bool(observing),
                confirmation_needed=confirmation_needed,
                blocked_by=blocked_by,
                observing=observing,
                user_autonomy_level=level,
            )
        except Exception as exc:
            logger.error("escalation_check_failed", action=action.type, error=str(exc))
            return EscalationDecision(
                can_proceed=False,
                requires_confirmation=True,
                blocked_by=["error_evaluating_constraints"],
                user_autonomy_level=0,
            )


def describe_level(level: Optional[int]) -> str:
    return LEVEL_NAMES.get(level if level is not None else 0, "custom")

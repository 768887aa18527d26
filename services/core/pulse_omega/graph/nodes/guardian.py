"""
GUARDIAN

Combines four independent verdicts into ``approved`` / ``should_auto_execute``:

    oracle review   - probabilistic, may be unavailable (fails closed)
    hard guard      - deterministic veto (see graph.hardguard)
    escalation      - constraint matching against the user's autonomy level
    calibration     - auto-execution is judged on calibrated, not raw, confidence

    approved            = review.approved AND hard_approved AND can_proceed
    should_auto_execute = approved AND hard_approved AND NOT requires_human_review
                          AND can_proceed AND NOT requires_confirmation
                          AND calibrated >= threshold AND risk == low
                          AND level >= AUTO_EXECUTE_MIN_LEVEL
"""
import asyncio
from typing import Any, Dict, List

from pulse_omega.autonomy.engine import can_auto_execute, describe_level
from pulse_omega.exceptions import BaseOmegaException
from pulse_omega.graph.base import (
    RunContext,
    StageResult,
    as_list,
    auto_execute_threshold,
    choice,
    stage_node,
)
from pulse_omega.graph.hardguard import hard_guard
from pulse_omega.graph.stages import Stage
from pulse_omega.graph.state import PipelineState
from pulse_omega.llm import prompts
from pulse_omega.llm.decoder import decode_json
from pulse_omega.logging_config import get_logger
from pulse_omega.schemas import (
    ActionDescriptor,
    ConstraintCheck,
    ConstraintViolation,
    GuardianReview,
)

logger = get_logger(__name__)

LEDGER_STAGE = "guardian"
DRAFT_LEDGER_STAGE = "draft_generator"
RISK_LEVELS = ("low", "medium", "high")
RECOMMENDATIONS = ("approve", "modify", "reject")
IRREVERSIBLE_DRAFT_TYPES = ("delete", "terminate", "cancel")


def parse_review(data: Dict[str, Any]) -> GuardianReview:
    checks = [
        ConstraintCheck(
            constraint=str(item.get("constraint") or "unnamed"),
            passed=item.get("passed") is True,
            reason=str(item.get("reason") or ""),
        )
        for item in as_list(data.get("constraint_checks"))
        if isinstance(item, dict)
    ]
    return GuardianReview(
        approved=data.get("approved") is True,
        constraint_checks=checks,
        modifications_required=[str(m) for m in as_list(data.get("modifications_required"))],
        risk_assessment=choice(data.get("risk_assessment"), RISK_LEVELS, "high"),
        recommendation=choice(data.get("recommendation"), RECOMMENDATIONS, "reject"),
    )


def unavailable_review(reason: str) -> GuardianReview:
    return GuardianReview(
        approved=False,
        modifications_required=[f"Guardian review unavailable: {reason}"],
        risk_assessment="high",
        recommendation="reject",
    )


def veto(review: GuardianReview, reasons: List[str]) -> GuardianReview:
    """Force rejection; appends ``reasons`` to the required modifications."""
    return review.model_copy(update={
        "approved": False,
        "recommendation": "reject",
        "risk_assessment": "high",
        "modifications_required": review.modifications_required + reasons,
    })


def _inputs(state: PipelineState) -> Dict[str, Any]:
    draft = state.get("draft")
    return {
        "draft_id": draft.id if draft else None,
        "draft_type": draft.draft_type if draft else None,
        "raw_confidence": draft.confidence if draft else None,
        "simulation_count": len(state.get("simulations") or []),
        "error_count": len(state.get("errors") or []),
    }


@stage_node(
    Stage.GUARDIAN,
    label="Guardian",
    defaults={"approved": False, "should_auto_execute": False},
    inputs=_inputs,
)
async def guardian_node(state: PipelineState, run: RunContext) -> StageResult:
    hard = hard_guard(state)
    draft = state.get("draft")

    if draft is None:
        review = veto(unavailable_review("no draft"), hard.hard_blocks)
        return StageResult(
            update={
                "hard_guard": hard,
                "guardian_review": review,
                "approved": False,
                "should_auto_execute": False,
            },
            output={"approved": False, "hard_blocks": hard.hard_blocks},
        )

    intent = state.get("intent")
    autonomy, calibrated = await asyncio.gather(
        run.deps.autonomy.get_level(state["user_id"], run.snapshot, run.calibration),
        run.calibration.get_adjusted_confidence(DRAFT_LEDGER_STAGE, draft.confidence),
    )
    action = ActionDescriptor(
        type=draft.draft_type,
        domain=intent.draft_type if intent else None,
        confidence=calibrated,
        is_irreversible=draft.draft_type in IRREVERSIBLE_DRAFT_TYPES,
    )
    escalation = run.deps.autonomy.check_escalation(action, run.snapshot.constraints, autonomy.level)
    threshold = auto_execute_threshold(state, run.deps.settings)

    error = None
    try:
        prompt = prompts.render(
            prompts.GUARDIAN,
            draft=draft.model_dump(mode="json"),
            constraints=[c.model_dump(mode="json") for c in run.snapshot.constraints],
            raw_confidence=draft.confidence,
            calibrated_confidence=calibrated,
            autonomy_level=autonomy.level,
            autonomy_reason=autonomy.reason,
            simulations=[s.model_dump(mode="json") for s in state.get("simulations") or []],
            escalation=escalation.model_dump(mode="json"),
        )
        review = parse_review(decode_json(await run.ask(prompt)).unwrap_object())
    except BaseOmegaException as exc:
        error = f"Guardian error: {exc}"
        review = unavailable_review(exc.message)

    if not hard.hard_approved:
        review = veto(review, hard.hard_blocks)
    if not escalation.can_proceed:
        review = veto(review, [f"Blocked by constraint: {name}" for name in escalation.blocked_by])

    approved = review.approved and hard.hard_approved and escalation.can_proceed
    should_auto_execute = (
        approved
        and hard.hard_approved
        and not hard.requires_human_review
        and escalation.can_proceed
        and not escalation.requires_confirmation
        and calibrated >= threshold
        and review.risk_assessment == "low"
        and can_auto_execute(autonomy.level)
    )

    run.calibration.record_prediction(
        LEDGER_STAGE,
        calibrated,
        {
            "draft_id": draft.id,
            "approved": approved,
            "auto_execute": should_auto_execute,
            "risk_assessment": review.risk_assessment,
        },
    )

    constraints_by_name = {c.constraint_name: c for c in run.snapshot.constraints}
    for check in review.constraint_checks:
        constraint = constraints_by_name.get(check.constraint)
        if check.passed or constraint is None:
            continue
        violation = ConstraintViolation(
            user_id=state["user_id"],
            constraint_id=constraint.id,
            attempted_action={"draft_id": draft.id, "draft_type": draft.draft_type},
            violation_reason=check.reason,
            blocked=not approved,
        )
        await run.write(
            "constraint_violation",
            lambda violation=violation: run.deps.store.insert_constraint_violation(violation),
            constraint=constraint.constraint_name,
            session_id=state.get("session_id"),
        )

    logger.info(
        "guardian_decision",
        session_id=state.get("session_id"),
        approved=approved,
        should_auto_execute=should_auto_execute,
        hard_blocks=len(hard.hard_blocks),
        autonomy_level=autonomy.level,
        calibrated_confidence=calibrated,
    )

    return StageResult(
        update={
            "hard_guard": hard,
            "escalation": escalation,
            "autonomy_level": autonomy.level,
            "calibrated_confidence": calibrated,
            "guardian_review": review,
            "approved": approved,
            "should_auto_execute": should_auto_execute,
        },
        output={
            "approved": approved,
            "should_auto_execute": should_auto_execute,
            "risk_assessment": review.risk_assessment,
            "recommendation": review.recommendation,
            "hard_blocks": hard.hard_blocks,
            "requires_human_review": hard.requires_human_review,
            "calibrated_confidence": calibrated,
            "threshold": threshold,
            "autonomy_level": autonomy.level,
            "autonomy": describe_level(autonomy.level),
            "blocked_by": escalation.blocked_by,
            "confirmation_needed": escalation.confirmation_needed,
        },
        error=error,
    )

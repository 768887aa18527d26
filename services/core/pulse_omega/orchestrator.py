"""
PULSE OMEGA ORCHESTRATOR

Entry point for a single signal:

    process_signal(signal, user_id, user_context) -> PipelineState

- never raises: stage, persistence and graph-level failures all end up in
  ``state["errors"]``
- persists exactly one trace per run, including failed and cancelled runs
- collaborators are injected once; per-run objects travel through
  LangGraph's ``configurable``

Also hosts the operations around a run: user feedback on a queued draft
(which resolves the run's confidence predictions), autonomy inspection and
the out-of-band self-improvement loop.
"""
import asyncio
from typing import Any, Dict, List, Literal, Optional, Tuple

from pulse_omega.autonomy.confidence_ledger import ConfidenceLedger
from pulse_omega.autonomy.engine import AutonomyEngine, can_auto_execute, describe_level
from pulse_omega.config import OmegaSettings
from pulse_omega.context import ContextProvider, StaticContextProvider
from pulse_omega.exceptions import DraftNotFound
from pulse_omega.graph.base import PipelineDeps, RunContext
from pulse_omega.graph.builder import RUN_CONTEXT_KEY, build_graph
from pulse_omega.graph.nodes import diagnose_node, evolve_node
from pulse_omega.graph.nodes.outcome import execution_result
from pulse_omega.graph.state import PipelineState, apply_update, initial_state
from pulse_omega.llm.oracle import ReasoningOracle
from pulse_omega.logging_config import get_logger, log_error
from pulse_omega.persistence.store import RecordStore
from pulse_omega.persistence.trace_persister import TracePersister
from pulse_omega.schemas import (
    ActionDescriptor,
    Draft,
    EscalationDecision,
    FeedbackResult,
    Outcome,
    Signal,
    UserContextSnapshot,
    utcnow,
)

logger = get_logger(__name__)

FeedbackAction = Literal["approve", "reject", "edit"]

FEEDBACK_EFFECTS = {
    "approve": ("approved", "success"),
    "reject": ("rejected", "failure"),
    "edit": ("edited", "partial"),
}

# Recursion guard for the compiled graph; the longest path has 8 stages.
RECURSION_LIMIT = 25


class OmegaPipeline:

    def __init__(
        self,
        oracle: ReasoningOracle,
        store: RecordStore,
        context_provider: Optional[ContextProvider] = None,
        settings: Optional[OmegaSettings] = None,
        ledger: Optional[ConfidenceLedger] = None,
        autonomy: Optional[AutonomyEngine] = None,
    ):
        self.settings = settings or OmegaSettings()
        self.store = store
        self.context_provider = context_provider or StaticContextProvider()
        self.ledger = ledger or ConfidenceLedger(store, timeout_s=self.settings.persist_timeout_s)
        self.deps = PipelineDeps(
            oracle=oracle,
            store=store,
            ledger=self.ledger,
            autonomy=autonomy or AutonomyEngine(),
            settings=self.settings,
        )
        self.persister = TracePersister(store, timeout_s=self.settings.persist_timeout_s)
        self.graph = build_graph()

    # =========================================================================
    # Run setup
    # =========================================================================

    async def _load_snapshot(self, user_id: str) -> UserContextSnapshot:
        return await asyncio.wait_for(
            self.context_provider.load(user_id), timeout=self.settings.persist_timeout_s
        )

    def _merge_context(
        self, user_context: Any, snapshot: UserContextSnapshot
    ) -> Tuple[Dict[str, Any], List[str]]:
        """Caller context over stored preferences, plus the configured exploration rate.

        Malformed caller input is dropped and reported, never raised.
        """
        errors = []
        if user_context is not None and not isinstance(user_context, dict):
            errors.append(f"Invalid user_context: expected a mapping, got {type(user_context).__name__}")
            user_context = None
        context = dict(user_context or {})

        caller_prefs = context.get("preferences")
        if caller_prefs is not None and not isinstance(caller_prefs, dict):
            errors.append(f"Invalid preferences: expected a mapping, got {type(caller_prefs).__name__}")
            caller_prefs = None

        stored_prefs = snapshot.preferences if isinstance(snapshot.preferences, dict) else {}
        prefs = {**stored_prefs, **(caller_prefs or {})}
        prefs.setdefault("exploration_rate", self.settings.exploration_rate)
        context["preferences"] = prefs
        return context, errors

    async def _start(
        self,
        signal: Optional[Signal],
        user_id: str,
        user_context: Optional[Dict[str, Any]],
    ):
        errors = []
        try:
            snapshot = await self._load_snapshot(user_id)
        except Exception as exc:
            log_error(exc, {"stage": "context_load", "user_id": user_id}, level="WARNING")
            errors.append(f"Context load error: {exc}")
            snapshot = UserContextSnapshot()

        try:
            context, context_errors = self._merge_context(user_context, snapshot)
        except Exception as exc:
            log_error(exc, {"stage": "context_merge", "user_id": user_id}, level="WARNING")
            context, context_errors = {}, [f"Context merge error: {exc}"]
        errors.extend(context_errors)

        state = initial_state(signal, user_id, context)
        state = apply_update(state, {"errors": errors})
        calibration = self.ledger.for_user(
            user_id, snapshot.calibration_history, session_id=state["session_id"]
        )
        return state, RunContext(deps=self.deps, snapshot=snapshot, calibration=calibration)

    async def _finish(self, state: PipelineState, trace_type: str = "omega_pipeline") -> None:
        await self.ledger.drain()
        await self.persister.persist(state, trace_type)

    @staticmethod
    def _failed(state: PipelineState, message: str) -> PipelineState:
        return apply_update(state, {
            "errors": [message],
            "approved": False,
            "should_auto_execute": False,
        })

    # =========================================================================
    # Operations
    # =========================================================================

    async def process_signal(
        self,
        signal: Signal,
        user_id: str,
        user_context: Optional[Dict[str, Any]] = None,
    ) -> PipelineState:
        state, run = await self._start(signal, user_id, user_context)
        log = logger.bind(session_id=state["session_id"], user_id=user_id, signal_id=signal.id)
        log.info("omega_run_started", signal_type=signal.signal_type, source=signal.source)

        try:
            async for snapshot in self.graph.astream(
                state,
                config={
                    "configurable": {RUN_CONTEXT_KEY: run},
                    "recursion_limit": RECURSION_LIMIT,
                },
                stream_mode="values",
            ):
                state = snapshot
        except asyncio.CancelledError:
            log.warning("omega_run_cancelled", steps=len(state.get("reasoning_trace") or []))
            state = self._failed(state, "Run cancelled")
            await asyncio.shield(self._finish(state))
            raise
        except Exception as exc:
            log_error(exc, {"stage": "graph", "session_id": state["session_id"]})
            state = self._failed(state, f"Graph error: {exc}")

        await self._finish(state)

        log.info(
            "omega_run_completed",
            approved=state.get("approved"),
            auto_executed=state.get("should_auto_execute"),
            errors=len(state.get("errors") or []),
            review_reason=state.get("review_reason"),
        )
        return state

    async def _resolve_predictions(self, user_id: str, draft: Draft, outcome_type: str) -> int:
        """Attach the human outcome to every open prediction about this draft."""
        try:
            events = await asyncio.wait_for(
                self.store.find_confidence_events(user_id, draft.id, draft.intent_id or None),
                timeout=self.settings.persist_timeout_s,
            )
        except Exception as exc:
            log_error(exc, {"stage": "calibration", "draft_id": draft.id}, level="WARNING")
            return 0

        open_events = [event for event in events if event.outcome is None]
        resolved = await asyncio.gather(*(
            self.ledger.record_outcome(event.id, event.predicted_confidence, outcome_type)
            for event in open_events
        ))
        return sum(1 for ok in resolved if ok)

    async def process_feedback(
        self,
        draft_id: str,
        user_id: str,
        action: FeedbackAction,
        feedback: Optional[str] = None,
        edited_content: Optional[Dict[str, Any]] = None,
        user_rating: Optional[int] = None,
    ) -> FeedbackResult:
        """Apply a human decision to a queued draft and record its outcome.

        Approval executes the draft through the same dispatch as auto-execution.
        The outcome resolves the run's intent, draft and guardian predictions.
        """
        if action not in FEEDBACK_EFFECTS:
            raise ValueError(f"Unknown feedback action: {action}")

        draft = await self.store.get_draft(draft_id)
        if draft is None:
            raise DraftNotFound(draft_id)

        status, outcome_type = FEEDBACK_EFFECTS[action]
        execution = None
        if action == "approve":
            execution = execution_result(draft, utcnow())

        await self.store.update_draft_status(
            draft_id,
            status,
            executed_at=execution.executed_at if execution else None,
            feedback=feedback,
            content=edited_content if action == "edit" else None,
        )
        outcome = Outcome(
            user_id=user_id,
            draft_id=draft_id,
            outcome_type=outcome_type,
            draft_type=draft.draft_type,
            user_rating=user_rating,
            notes=feedback,
        )
        await self.store.insert_outcome(outcome)
        calibrated = await self._resolve_predictions(user_id, draft, outcome_type)

        logger.info(
            "draft_feedback_recorded",
            draft_id=draft_id,
            user_id=user_id,
            action=action,
            outcome=outcome_type,
            executed=execution is not None,
            calibrated_events=calibrated,
        )
        return FeedbackResult(
            outcome=outcome,
            draft_status=status,
            execution_result=execution,
            calibrated_events=calibrated,
        )

    async def _autonomy(self, user_id: str):
        snapshot = await self._load_snapshot(user_id)
        calibration = self.ledger.for_user(user_id, snapshot.calibration_history)
        info = await self.deps.autonomy.get_level(user_id, snapshot, calibration)
        return snapshot, calibration, info

    async def autonomy_status(self, user_id: str) -> Dict[str, Any]:
        """Effective autonomy level next to the level earned by calibration."""
        _, calibration, info = await self._autonomy(user_id)
        earned = calibration.earned_autonomy()
        return {
            "autonomy": {
                "level": info.level,
                "level_name": describe_level(info.level),
                "reason": info.reason,
                "is_manual_override": info.is_manual_override,
                "can_auto_execute": can_auto_execute(info.level),
            },
            "earned": {
                "level": earned.level,
                "reason": earned.reason,
                "calibration_score": earned.calibration_score,
            },
        }

    async def check_action(self, user_id: str, action: ActionDescriptor) -> EscalationDecision:
        """Escalation decision for a hypothetical action at the user's current level."""
        snapshot, _, info = await self._autonomy(user_id)
        return self.deps.autonomy.check_escalation(action, snapshot.constraints, info.level)

    async def run_self_improvement_loop(self, user_id: str) -> Dict[str, Any]:
        """Diagnose recent reasoning and propose improvements, outside any signal."""
        state, run = await self._start(None, user_id, None)
        try:
            for node in (diagnose_node, evolve_node):
                state = apply_update(state, await node(state, run))
        finally:
            await asyncio.shield(self._finish(state, trace_type="self_improvement"))

        result = {
            "session_id": state["session_id"],
            "cognitive_issues": [limit.model_dump(mode="json") for limit in state["cognitive_issues"]],
            "improvements_proposed": [
                improvement.model_dump(mode="json") for improvement in state["proposed_improvements"]
            ],
            "errors": list(state["errors"]),
        }
        logger.info(
            "self_improvement_completed",
            user_id=user_id,
            cognitive_issues=len(result["cognitive_issues"]),
            improvements=len(result["improvements_proposed"]),
        )
        return result

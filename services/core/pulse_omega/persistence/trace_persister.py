"""
TRACE PERSISTER

Writes the outcome of a run: one trace row (always, even for failed runs),
one row per cognitive limit and one row per proposed improvement. Each write
is independent; a failure is logged and the remaining writes still happen.
``persist`` never raises.
"""
from typing import Any, Dict

from pulse_omega.graph.state import PipelineState
from pulse_omega.logging_config import get_logger, log_error
from pulse_omega.persistence.store import RecordStore, TraceRecord, best_effort_write

logger = get_logger(__name__)


def _dump(value: Any) -> Any:
    if value is None:
        return None
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


def build_trace_record(state: PipelineState, trace_type: str = "omega_pipeline") -> TraceRecord:
    steps = list(state.get("reasoning_trace") or [])
    errors = list(state.get("errors") or [])
    signal = state.get("signal")

    output: Dict[str, Any] = {
        "intent": _dump(state.get("intent")),
        "draft": _dump(state.get("draft")),
        "approved": bool(state.get("approved")),
        "auto_executed": bool(state.get("should_auto_execute")),
        "hard_guard": _dump(state.get("hard_guard")),
        "execution_result": _dump(state.get("execution_result")),
        "review_reason": state.get("review_reason"),
        "errors": errors,
    }

    return TraceRecord(
        user_id=state.get("user_id") or "",
        session_id=state.get("session_id") or "",
        trace_type=trace_type,
        input_context={"signal": _dump(signal)},
        reasoning_steps=[step.model_dump(mode="json") for step in steps],
        output=output,
        duration_ms=sum(step.duration_ms for step in steps),
        success=not errors,
    )


class TracePersister:

    def __init__(self, store: RecordStore, timeout_s: float = 10.0):
        self.store = store
        self.timeout_s = timeout_s

    async def persist(self, state: PipelineState, trace_type: str = "omega_pipeline") -> bool:
        """Persist a finished (or failed) run. Returns whether the trace row was written."""
        try:
            trace = build_trace_record(state, trace_type)
        except Exception as exc:
            log_error(exc, {"stage": "persist", "session_id": state.get("session_id")})
            return False

        user_id = trace.user_id
        context = {"session_id": trace.session_id, "user_id": user_id}

        written = await best_effort_write(
            "trace", lambda: self.store.insert_trace(trace), self.timeout_s, **context
        )

        for limit in state.get("cognitive_issues") or []:
            await best_effort_write(
                "cognitive_limit",
                lambda limit=limit: self.store.insert_cognitive_limit(user_id, limit),
                self.timeout_s,
                **context,
            )

        for improvement in state.get("proposed_improvements") or []:
            await best_effort_write(
                "improvement",
                lambda improvement=improvement: self.store.insert_improvement(
                    user_id, improvement, status="proposed"
                ),
                self.timeout_s,
                **context,
            )

        logger.info(
            "trace_persisted" if written else "trace_persist_failed",
            session_id=trace.session_id,
            steps=len(trace.reasoning_steps),
            success=trace.success,
        )
        return written

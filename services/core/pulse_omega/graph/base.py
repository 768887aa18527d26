"""
STAGE NODE CONTRACT

Every stage is ``async (state, run) -> partial update`` wrapped by
``stage_node``, which guarantees:

- exactly one ReasoningStep per invocation, success or failure
- no exception escapes the stage (CancelledError is not an Exception and
  still propagates)
- on failure: ``{errors: [message], **safe_defaults}`` plus an error-tagged step
"""
import functools
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from pulse_omega.autonomy.confidence_ledger import ConfidenceLedger, UserCalibration
from pulse_omega.autonomy.engine import AutonomyEngine
from pulse_omega.config import OmegaSettings
from pulse_omega.graph.stages import Stage
from pulse_omega.graph.state import PipelineState, preferences
from pulse_omega.llm.oracle import ReasoningOracle, ask_oracle
from pulse_omega.logging_config import get_logger
from pulse_omega.persistence.store import RecordStore, best_effort_write
from pulse_omega.schemas import ReasoningStep, UserContextSnapshot

logger = get_logger(__name__)


# =============================================================================
# Dependencies
# =============================================================================

@dataclass
class PipelineDeps:
    """Process-wide collaborators, created once and shared by every run."""
    oracle: ReasoningOracle
    store: RecordStore
    ledger: ConfidenceLedger
    autonomy: AutonomyEngine
    settings: OmegaSettings


@dataclass
class RunContext:
    """Per-run handles passed to stages through LangGraph's ``configurable``."""
    deps: PipelineDeps
    snapshot: UserContextSnapshot
    calibration: UserCalibration

    async def ask(self, prompt: str) -> str:
        return await ask_oracle(self.deps.oracle, prompt, self.deps.settings.oracle_timeout_s)

    async def write(self, kind: str, write: Callable[[], Awaitable[Any]], **context: Any) -> bool:
        return await best_effort_write(kind, write, self.deps.settings.persist_timeout_s, **context)


@dataclass
class StageResult:
    update: Dict[str, Any] = field(default_factory=dict)
    output: Dict[str, Any] = field(default_factory=dict)
    input: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


StageFn = Callable[[PipelineState, RunContext], Awaitable[StageResult]]


# =============================================================================
# Decorator
# =============================================================================

def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _summarize(inputs: Optional[Callable[[PipelineState], Dict[str, Any]]], state: PipelineState) -> Dict[str, Any]:
    if inputs is None:
        return {}
    try:
        return inputs(state)
    except Exception as exc:
        return {"summary_error": str(exc)}


def stage_node(
    stage: Stage,
    *,
    label: str,
    defaults: Optional[Dict[str, Any]] = None,
    inputs: Optional[Callable[[PipelineState], Dict[str, Any]]] = None,
):
    def decorator(fn: StageFn):
        @functools.wraps(fn)
        async def wrapper(state: PipelineState, run: RunContext) -> Dict[str, Any]:
            started = time.perf_counter()
            try:
                result = await fn(state, run)
            except Exception as exc:
                message = f"{label} error: {exc}"
                logger.warning(
                    "stage_failed",
                    stage=stage.value,
                    error_type=type(exc).__name__,
                    error=str(exc),
                    session_id=state.get("session_id"),
                )
                step = ReasoningStep(
                    node=stage.value,
                    input=_summarize(inputs, state),
                    output={"error": str(exc)},
                    duration_ms=_elapsed_ms(started),
                    error=message,
                )
                return {**(defaults or {}), "errors": [message], "reasoning_trace": [step]}

            update = dict(result.update)
            step = ReasoningStep(
                node=stage.value,
                input=result.input if result.input is not None else _summarize(inputs, state),
                output=result.output,
                duration_ms=_elapsed_ms(started),
                error=result.error,
            )
            if result.error:
                update["errors"] = [result.error]
            update["reasoning_trace"] = [step]

            logger.info(
                "stage_completed",
                stage=stage.value,
                duration_ms=step.duration_ms,
                error=result.error,
                session_id=state.get("session_id"),
            )
            return update

        wrapper.stage = stage
        return wrapper

    return decorator


# =============================================================================
# Coercion helpers for oracle output
# =============================================================================

def clamp01(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return max(0.0, min(1.0, number))


def choice(value: Any, allowed: Iterable[str], default: str) -> str:
    text = str(value).strip().lower() if value is not None else ""
    return text if text in allowed else default


def as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def auto_execute_threshold(state: PipelineState, settings: OmegaSettings) -> float:
    """Caller threshold when it is a positive number, else the configured default."""
    default = settings.auto_execute_threshold
    configured = preferences(state).get("auto_execute_threshold")
    if configured is None:
        return default
    threshold = clamp01(configured, default)
    return threshold if threshold > 0 else default

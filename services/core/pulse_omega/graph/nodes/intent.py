from datetime import datetime
from typing import Any, Dict

from pulse_omega.exceptions import MissingStageInput
from pulse_omega.graph.base import RunContext, StageResult, choice, clamp01, stage_node
from pulse_omega.graph.stages import Stage
from pulse_omega.graph.state import PipelineState
from pulse_omega.llm import prompts
from pulse_omega.llm.decoder import decode_json
from pulse_omega.schemas import Intent, Signal

URGENCIES = ("immediate", "soon", "when_convenient")
LEDGER_STAGE = "intent_predictor"


def part_of_day(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


def time_context(moment: datetime) -> Dict[str, Any]:
    """Time-of-day context taken from the signal, not the wall clock."""
    return {
        "timestamp": moment.isoformat(),
        "hour": moment.hour,
        "weekday": moment.strftime("%A"),
        "is_weekend": moment.weekday() >= 5,
        "part_of_day": part_of_day(moment.hour),
    }


def parse_intent(data: Dict[str, Any], signal: Signal) -> Intent:
    need = data.get("predicted_need")
    if not need:
        raise ValueError("oracle returned no predicted_need")
    return Intent(
        signal_id=signal.id,
        predicted_need=str(need),
        confidence=clamp01(data.get("confidence")),
        reasoning=str(data.get("reasoning") or ""),
        suggested_action=str(data.get("suggested_action") or ""),
        draft_type=str(data.get("draft_type") or "task").strip().lower(),
        urgency=choice(data.get("urgency"), URGENCIES, "when_convenient"),
    )


def _inputs(state: PipelineState) -> Dict[str, Any]:
    signal = state.get("signal")
    return {
        "signal_type": signal.signal_type if signal else None,
        "observation_count": len(state.get("observations") or []),
    }


@stage_node(Stage.PREDICT_INTENT, label="Intent prediction", inputs=_inputs)
async def predict_intent_node(state: PipelineState, run: RunContext) -> StageResult:
    signal = state.get("signal")
    if signal is None:
        raise MissingStageInput("Intent Predictor", "signal")

    prompt = prompts.render(
        prompts.PREDICT_INTENT,
        signal=signal.model_dump(mode="json"),
        observations=[o.model_dump(mode="json") for o in state.get("observations") or []],
        goals=run.snapshot.goals,
        strategies=run.snapshot.strategies,
        time_context=time_context(signal.created_at),
    )
    intent = parse_intent(decode_json(await run.ask(prompt)).unwrap_object(), signal)

    event_id = run.calibration.record_prediction(
        LEDGER_STAGE,
        intent.confidence,
        {"signal_id": signal.id, "intent_id": intent.id, "draft_type": intent.draft_type},
    )

    return StageResult(
        update={"intent": intent},
        output={
            "predicted_need": intent.predicted_need,
            "confidence": intent.confidence,
            "draft_type": intent.draft_type,
            "urgency": intent.urgency,
            "confidence_event_id": event_id,
        },
    )

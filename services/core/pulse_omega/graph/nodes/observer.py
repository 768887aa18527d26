from typing import Any, Dict, List

from pulse_omega.exceptions import MissingStageInput
from pulse_omega.graph.base import RunContext, StageResult, choice, clamp01, stage_node
from pulse_omega.graph.stages import Stage
from pulse_omega.graph.state import PipelineState
from pulse_omega.llm import prompts
from pulse_omega.llm.decoder import decode_json
from pulse_omega.schemas import Observation

OBSERVATION_TYPES = ("pattern", "anomaly", "success", "failure", "opportunity", "risk")
RECENT_OUTCOME_LIMIT = 10


def _signal_summary(state: PipelineState) -> Dict[str, Any]:
    signal = state.get("signal")
    if signal is None:
        return {}
    return {"signal_id": signal.id, "source": signal.source, "signal_type": signal.signal_type}


def parse_observations(data: Any) -> List[Observation]:
    items = data.get("observations", []) if isinstance(data, dict) else data
    observations = []
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict) or not item.get("description"):
            continue
        observations.append(Observation(
            type=choice(item.get("type"), OBSERVATION_TYPES, "pattern"),
            description=str(item["description"]),
            confidence=clamp01(item.get("confidence"), 0.5),
            evidence=str(item.get("evidence") or ""),
        ))
    return observations


@stage_node(Stage.OBSERVE, label="Observer", defaults={"observations": []}, inputs=_signal_summary)
async def observe_node(state: PipelineState, run: RunContext) -> StageResult:
    signal = state.get("signal")
    if signal is None:
        raise MissingStageInput("Observer", "signal")

    outcomes = [
        outcome.model_dump(mode="json", include={"outcome_type", "draft_type", "user_rating", "notes"})
        for outcome in run.snapshot.recent_outcomes[:RECENT_OUTCOME_LIMIT]
    ]
    prompt = prompts.render(prompts.OBSERVE, signal=signal.model_dump(mode="json"), outcomes=outcomes)
    observations = parse_observations(decode_json(await run.ask(prompt)).unwrap())

    return StageResult(
        update={"observations": observations},
        output={
            "observation_count": len(observations),
            "types": [o.type for o in observations],
        },
    )

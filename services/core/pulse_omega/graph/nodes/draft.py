from typing import Any, Dict

from pulse_omega.graph.base import RunContext, StageResult, clamp01, stage_node
from pulse_omega.graph.stages import Stage
from pulse_omega.graph.state import PipelineState, preferences
from pulse_omega.llm import prompts
from pulse_omega.llm.decoder import decode_json
from pulse_omega.schemas import Draft, Intent

LEDGER_STAGE = "draft_generator"


def parse_draft(data: Dict[str, Any], intent: Intent) -> Draft:
    content = data.get("content")
    if isinstance(content, str):
        content = {"body": content}
    elif not isinstance(content, dict):
        content = {}

    return Draft(
        intent_id=intent.id,
        draft_type=str(data.get("draft_type") or intent.draft_type).strip().lower(),
        title=str(data.get("title") or intent.predicted_need),
        content=content,
        confidence=clamp01(data.get("confidence"), intent.confidence),
    )


def _inputs(state: PipelineState) -> Dict[str, Any]:
    intent = state.get("intent")
    if intent is None:
        return {"intent": None}
    return {"intent_id": intent.id, "draft_type": intent.draft_type, "confidence": intent.confidence}


@stage_node(Stage.GENERATE_DRAFT, label="Draft generation", inputs=_inputs)
async def generate_draft_node(state: PipelineState, run: RunContext) -> StageResult:
    intent = state.get("intent")
    if intent is None:
        return StageResult(
            output={"skipped": True, "reason": "no intent"},
            error="Draft generation skipped: no intent to act on",
        )

    prompt = prompts.render(
        prompts.GENERATE_DRAFT,
        intent=intent.model_dump(mode="json"),
        preferences=preferences(state),
        strategies=run.snapshot.strategies,
    )
    draft = parse_draft(decode_json(await run.ask(prompt)).unwrap_object(), intent)

    run.calibration.record_prediction(
        LEDGER_STAGE,
        draft.confidence,
        {"intent_id": intent.id, "draft_id": draft.id, "draft_type": draft.draft_type},
    )
    await run.write(
        "draft",
        lambda: run.deps.store.insert_draft(state["user_id"], draft),
        draft_id=draft.id,
        session_id=state.get("session_id"),
    )

    return StageResult(
        update={"draft": draft},
        output={
            "draft_id": draft.id,
            "title": draft.title,
            "draft_type": draft.draft_type,
            "confidence": draft.confidence,
        },
    )

"""
DEEP ANALYSIS BRANCH

diagnose -> simulate -> evolve, taken when the post-draft router asks for a
closer look. Each stage is optional in the sense that an empty input makes
it a no-op, never an error.
"""
from typing import Any, Dict, List, Tuple

from pulse_omega.graph.base import RunContext, StageResult, as_list, choice, clamp01, stage_node
from pulse_omega.graph.stages import Stage
from pulse_omega.graph.state import PipelineState
from pulse_omega.llm import prompts
from pulse_omega.llm.decoder import decode_json
from pulse_omega.schemas import CognitiveLimit, Improvement, Simulation

LIMIT_TYPES = (
    "prediction_blind_spot", "domain_weakness", "timing_error", "confidence_miscalibration",
)
SEVERITIES = ("low", "medium", "high")
SIMULATION_RECOMMENDATIONS = ("proceed", "modify", "abort")
IMPROVEMENT_TYPES = ("prompt_adjustment", "strategy_update", "threshold_change", "new_pattern")


def _items(data: Any, key: str) -> List[Dict[str, Any]]:
    items = data.get(key, []) if isinstance(data, dict) else data
    return [item for item in as_list(items) if isinstance(item, dict)]


def _mapping(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {} if value in (None, "") else {"value": value}


# =============================================================================
# Parsers
# =============================================================================

def parse_cognitive_limits(data: Any) -> List[CognitiveLimit]:
    return [
        CognitiveLimit(
            type=choice(item.get("type"), LIMIT_TYPES, "prediction_blind_spot"),
            description=str(item.get("description") or ""),
            severity=choice(item.get("severity"), SEVERITIES, "medium"),
            evidence=[str(e) for e in as_list(item.get("evidence"))],
            suggested_remedy=str(item.get("suggested_remedy") or ""),
        )
        for item in _items(data, "cognitive_limits")
        if item.get("description")
    ]


def parse_simulations(data: Any) -> Tuple[List[Simulation], str]:
    simulations = [
        Simulation(
            scenario=str(item.get("scenario") or ""),
            probability=clamp01(item.get("probability")),
            predicted_outcome=str(item.get("predicted_outcome") or ""),
            risks=[str(r) for r in as_list(item.get("risks"))],
            opportunities=[str(o) for o in as_list(item.get("opportunities"))],
        )
        for item in _items(data, "simulations")
        if item.get("scenario")
    ]
    recommendation = data.get("recommendation") if isinstance(data, dict) else None
    return simulations, choice(recommendation, SIMULATION_RECOMMENDATIONS, "modify")


def parse_improvements(data: Any) -> List[Improvement]:
    return [
        Improvement(
            type=choice(item.get("type"), IMPROVEMENT_TYPES, "strategy_update"),
            target=str(item["target"]),
            current_state=_mapping(item.get("current_state")),
            proposed_change=_mapping(item.get("proposed_change")),
            expected_impact=str(item.get("expected_impact") or ""),
            risk=str(item.get("risk") or ""),
        )
        for item in _items(data, "improvements")
        if item.get("target")
    ]


# =============================================================================
# Diagnoser
# =============================================================================

def _trace_digest(state: PipelineState) -> List[Dict[str, Any]]:
    return [
        {"node": step.node, "output": step.output, "error": step.error, "duration_ms": step.duration_ms}
        for step in state.get("reasoning_trace") or []
    ]


def _diagnose_inputs(state: PipelineState) -> Dict[str, Any]:
    return {
        "trace_steps": len(state.get("reasoning_trace") or []),
        "observation_count": len(state.get("observations") or []),
        "error_count": len(state.get("errors") or []),
    }


@stage_node(Stage.DIAGNOSE, label="Diagnoser", defaults={"cognitive_issues": []}, inputs=_diagnose_inputs)
async def diagnose_node(state: PipelineState, run: RunContext) -> StageResult:
    prompt = prompts.render(
        prompts.DIAGNOSE,
        trace=_trace_digest(state),
        observations=[o.model_dump(mode="json") for o in state.get("observations") or []],
    )
    limits = parse_cognitive_limits(decode_json(await run.ask(prompt)).unwrap())
    return StageResult(
        update={"cognitive_issues": limits},
        output={"limit_count": len(limits), "types": [limit.type for limit in limits]},
    )


# =============================================================================
# Simulator
# =============================================================================

def _simulate_inputs(state: PipelineState) -> Dict[str, Any]:
    draft = state.get("draft")
    return {
        "draft_id": draft.id if draft else None,
        "limit_count": len(state.get("cognitive_issues") or []),
    }


@stage_node(Stage.SIMULATE, label="Simulator", defaults={"simulations": []}, inputs=_simulate_inputs)
async def simulate_node(state: PipelineState, run: RunContext) -> StageResult:
    draft = state.get("draft")
    if draft is None:
        return StageResult(output={"skipped": True, "reason": "no draft to simulate"})

    prompt = prompts.render(
        prompts.SIMULATE,
        action=draft.model_dump(mode="json", include={"draft_type", "title", "content", "confidence"}),
        limits=[limit.model_dump(mode="json") for limit in state.get("cognitive_issues") or []],
    )
    simulations, recommendation = parse_simulations(decode_json(await run.ask(prompt)).unwrap())
    return StageResult(
        update={"simulations": simulations, "simulation_recommendation": recommendation},
        output={"simulation_count": len(simulations), "recommendation": recommendation},
    )


# =============================================================================
# Evolver
# =============================================================================

def _evolve_inputs(state: PipelineState) -> Dict[str, Any]:
    return {"limit_count": len(state.get("cognitive_issues") or [])}


@stage_node(Stage.EVOLVE, label="Evolver", defaults={"proposed_improvements": []}, inputs=_evolve_inputs)
async def evolve_node(state: PipelineState, run: RunContext) -> StageResult:
    limits = state.get("cognitive_issues") or []
    if not limits:
        return StageResult(output={"skipped": True, "improvement_count": 0})

    prompt = prompts.render(
        prompts.EVOLVE, limits=[limit.model_dump(mode="json") for limit in limits]
    )
    improvements = parse_improvements(decode_json(await run.ask(prompt)).unwrap())
    return StageResult(
        update={"proposed_improvements": improvements},
        output={
            "improvement_count": len(improvements),
            "targets": [improvement.target for improvement in improvements],
        },
    )

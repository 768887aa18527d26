"""
OMEGA GRAPH

    observe -> predict_intent -> generate_draft
                                     |
                  route_after_draft  +--> deep_analysis: diagnose -> simulate -> evolve --+
                                     +--> guardian <---------------------------------------+
                                              |
                       route_after_guardian   +--> execute          -> END
                                              +--> queue_for_review -> END

The transition table below is the single source of truth for the wiring.
``validate_transition_table`` runs before every compile and rejects a table
with missing stages, unmapped router labels or unreachable stages.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Mapping, Optional, Set, Type

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph

from pulse_omega.exceptions import TransitionTableError
from pulse_omega.graph.nodes import (
    diagnose_node,
    evolve_node,
    execute_node,
    generate_draft_node,
    guardian_node,
    observe_node,
    predict_intent_node,
    queue_for_review_node,
    simulate_node,
)
from pulse_omega.graph.routing import route_after_draft, route_after_guardian
from pulse_omega.graph.stages import DraftRoute, GuardianRoute, Stage
from pulse_omega.graph.state import PipelineState
from pulse_omega.logging_config import get_logger

logger = get_logger(__name__)

RUN_CONTEXT_KEY = "run"


@dataclass(frozen=True)
class Transition:
    router: Callable[[PipelineState], Enum]
    labels: Type[Enum]
    targets: Mapping[Enum, Stage]


ENTRY = Stage.OBSERVE

NODES = {
    Stage.OBSERVE: observe_node,
    Stage.PREDICT_INTENT: predict_intent_node,
    Stage.GENERATE_DRAFT: generate_draft_node,
    Stage.DIAGNOSE: diagnose_node,
    Stage.SIMULATE: simulate_node,
    Stage.EVOLVE: evolve_node,
    Stage.GUARDIAN: guardian_node,
    Stage.EXECUTE: execute_node,
    Stage.QUEUE_FOR_REVIEW: queue_for_review_node,
}

LINEAR_EDGES = {
    Stage.OBSERVE: Stage.PREDICT_INTENT,
    Stage.PREDICT_INTENT: Stage.GENERATE_DRAFT,
    Stage.DIAGNOSE: Stage.SIMULATE,
    Stage.SIMULATE: Stage.EVOLVE,
    Stage.EVOLVE: Stage.GUARDIAN,
}

CONDITIONAL_EDGES = {
    Stage.GENERATE_DRAFT: Transition(
        router=route_after_draft,
        labels=DraftRoute,
        targets={
            DraftRoute.DEEP_ANALYSIS: Stage.DIAGNOSE,
            DraftRoute.GUARDIAN: Stage.GUARDIAN,
        },
    ),
    Stage.GUARDIAN: Transition(
        router=route_after_guardian,
        labels=GuardianRoute,
        targets={
            GuardianRoute.EXECUTE: Stage.EXECUTE,
            GuardianRoute.QUEUE_FOR_REVIEW: Stage.QUEUE_FOR_REVIEW,
        },
    ),
}

TERMINAL_STAGES = frozenset({Stage.EXECUTE, Stage.QUEUE_FOR_REVIEW})


def _successors(stage: Stage, linear: Mapping, conditional: Mapping) -> Iterable[Stage]:
    if stage in linear:
        return [linear[stage]]
    if stage in conditional:
        return list(conditional[stage].targets.values())
    return []


def validate_transition_table(
    nodes: Mapping[Stage, Callable] = NODES,
    linear: Mapping[Stage, Stage] = LINEAR_EDGES,
    conditional: Mapping[Stage, Transition] = CONDITIONAL_EDGES,
    terminal: Iterable[Stage] = TERMINAL_STAGES,
    entry: Stage = ENTRY,
) -> None:
    """Raise TransitionTableError unless every stage is wired exactly once and reachable."""
    terminal = set(terminal)

    missing = [stage.value for stage in Stage if stage not in nodes]
    if missing:
        raise TransitionTableError(f"stages without a node: {missing}")

    for stage in Stage:
        kinds = (stage in linear) + (stage in conditional) + (stage in terminal)
        if kinds != 1:
            raise TransitionTableError(
                f"stage '{stage.value}' must have exactly one outgoing rule, found {kinds}"
            )

    for source, transition in conditional.items():
        expected = set(transition.labels)
        mapped = set(transition.targets)
        if mapped != expected:
            unmapped = sorted(label.value for label in expected - mapped)
            extra = sorted(getattr(label, "value", str(label)) for label in mapped - expected)
            raise TransitionTableError(
                f"router for '{source.value}' labels unmapped={unmapped} unknown={extra}"
            )

    reachable: Set[Stage] = set()
    frontier = [entry]
    while frontier:
        stage = frontier.pop()
        if stage in reachable:
            continue
        reachable.add(stage)
        frontier.extend(_successors(stage, linear, conditional))

    unreachable = sorted(stage.value for stage in Stage if stage not in reachable)
    if unreachable:
        raise TransitionTableError(f"unreachable stages: {unreachable}")


def _bind(node):
    async def run_node(state: PipelineState, config: RunnableConfig):
        return await node(state, config["configurable"][RUN_CONTEXT_KEY])

    run_node.__name__ = node.__name__
    return run_node


def _label(router: Callable[[PipelineState], Enum]):
    def route(state: PipelineState) -> str:
        return router(state).value

    route.__name__ = router.__name__
    return route


def build_graph(nodes: Optional[Dict[Stage, Callable]] = None):
    """Validate the transition table and compile the LangGraph runnable."""
    nodes = dict(nodes or NODES)
    validate_transition_table(nodes=nodes)

    workflow = StateGraph(PipelineState)
    for stage, node in nodes.items():
        workflow.add_node(stage.value, _bind(node))

    workflow.add_edge(START, ENTRY.value)
    for source, target in LINEAR_EDGES.items():
        workflow.add_edge(source.value, target.value)
    for source, transition in CONDITIONAL_EDGES.items():
        workflow.add_conditional_edges(
            source.value,
            _label(transition.router),
            {label.value: stage.value for label, stage in transition.targets.items()},
        )
    for stage in TERMINAL_STAGES:
        workflow.add_edge(stage.value, END)

    logger.info("omega_graph_compiled", stages=len(nodes))
    return workflow.compile()

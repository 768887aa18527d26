"""
OMEGA GRAPH MODULE

Components:
- state: PipelineState and its reducers
- stages/routing: stage identifiers and the two conditional routers
- hardguard: deterministic safety veto
- nodes: stage implementations
- builder: transition table and LangGraph wiring
"""
from pulse_omega.graph.builder import build_graph, validate_transition_table
from pulse_omega.graph.hardguard import hard_guard
from pulse_omega.graph.routing import route_after_draft, route_after_guardian
from pulse_omega.graph.stages import DraftRoute, GuardianRoute, Stage
from pulse_omega.graph.state import PipelineState, apply_update, initial_state

__all__ = [
    'build_graph',
    'validate_transition_table',
    'hard_guard',
    'route_after_draft',
    'route_after_guardian',
    'DraftRoute',
    'GuardianRoute',
    'Stage',
    'PipelineState',
    'apply_update',
    'initial_state',
]

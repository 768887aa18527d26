from pulse_omega.graph.nodes.analysis import diagnose_node, evolve_node, simulate_node
from pulse_omega.graph.nodes.draft import generate_draft_node
from pulse_omega.graph.nodes.guardian import guardian_node
from pulse_omega.graph.nodes.intent import predict_intent_node
from pulse_omega.graph.nodes.observer import observe_node
from pulse_omega.graph.nodes.outcome import execute_node, queue_for_review_node

__all__ = [
    'observe_node',
    'predict_intent_node',
    'generate_draft_node',
    'diagnose_node',
    'simulate_node',
    'evolve_node',
    'guardian_node',
    'execute_node',
    'queue_for_review_node',
]

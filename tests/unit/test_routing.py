"""
ROUTER AND GRAPH WIRING TESTS
"""
import pytest

from pulse_omega.exceptions import TransitionTableError
from pulse_omega.graph.builder import (
    CONDITIONAL_EDGES,
    LINEAR_EDGES,
    NODES,
    TERMINAL_STAGES,
    Transition,
    build_graph,
    validate_transition_table,
)
from pulse_omega.graph.routing import (
    exploration_sampled,
    route_after_draft,
    route_after_guardian,
    session_fraction,
)
from pulse_omega.graph.stages import DraftRoute, GuardianRoute, Stage
from pulse_omega.graph.state import apply_update, initial_state
from pulse_omega.schemas import Draft, ReasoningStep


def drafted_state(confidence=0.9, steps=3, errors=None, preferences=None, session_id="session-1"):
    state = initial_state(None, "user-1", {"preferences": preferences or {}}, session_id=session_id)
    return apply_update(state, {
        "draft": Draft(intent_id="i", draft_type="task", title="t", confidence=confidence),
        "reasoning_trace": [ReasoningStep(node=f"step-{i}") for i in range(steps)],
        "errors": errors or [],
    })


class TestPostDraftRouter:
    """Deep analysis iff enough trace and a reason to look."""

    def test_confident_clean_run_goes_to_guardian(self):
        assert route_after_draft(drafted_state()) is DraftRoute.GUARDIAN

    def test_low_confidence_goes_deep(self):
        assert route_after_draft(drafted_state(confidence=0.6)) is DraftRoute.DEEP_ANALYSIS

    def test_errors_go_deep(self):
        state = drafted_state(errors=["Observer error: timeout"])
        assert route_after_draft(state) is DraftRoute.DEEP_ANALYSIS

    def test_short_trace_never_goes_deep(self):
        state = drafted_state(confidence=0.2, steps=2, errors=["x"])
        assert route_after_draft(state) is DraftRoute.GUARDIAN

    def test_deterministic(self):
        """Same state, same route, every time."""
        state = drafted_state(
            confidence=0.8,
            preferences={"enable_exploration": True, "exploration_rate": 0.5},
        )
        routes = {route_after_draft(state) for _ in range(20)}
        assert len(routes) == 1


class TestExploration:
    """Hash-based exploration sampling."""

    def test_disabled_by_default(self):
        assert not exploration_sampled(drafted_state(preferences={"exploration_rate": 1.0}))

    def test_rate_one_always_samples(self):
        prefs = {"enable_exploration": True, "exploration_rate": 1.0}
        assert exploration_sampled(drafted_state(preferences=prefs))
        assert route_after_draft(drafted_state(preferences=prefs)) is DraftRoute.DEEP_ANALYSIS

    def test_rate_zero_never_samples(self):
        prefs = {"enable_exploration": True, "exploration_rate": 0.0}
        assert not exploration_sampled(drafted_state(preferences=prefs))

    def test_session_fraction_is_stable(self):
        value = session_fraction("session-abc")
        assert 0.0 <= value < 1.0
        assert value == session_fraction("session-abc")

    def test_sampling_follows_session_hash(self):
        prefs = {"enable_exploration": True, "exploration_rate": 0.5}
        for session_id in ("s-1", "s-2", "s-3", "s-4", "s-5"):
            state = drafted_state(preferences=prefs, session_id=session_id)
            assert exploration_sampled(state) == (session_fraction(session_id) < 0.5)


class TestPostGuardianRouter:
    """Executor only for approved auto-execution."""

    @pytest.mark.parametrize("approved,auto,expected", [
        (True, True, GuardianRoute.EXECUTE),
        (True, False, GuardianRoute.QUEUE_FOR_REVIEW),
        (False, True, GuardianRoute.QUEUE_FOR_REVIEW),
        (False, False, GuardianRoute.QUEUE_FOR_REVIEW),
    ])
    def test_routes(self, approved, auto, expected):
        state = apply_update(initial_state(None, "u"), {
            "approved": approved, "should_auto_execute": auto,
        })
        assert route_after_guardian(state) is expected


class TestTransitionTable:
    """Build-time validation of the wiring."""

    def test_default_table_is_valid(self):
        validate_transition_table()

    def test_every_stage_is_wired(self):
        wired = set(LINEAR_EDGES) | set(CONDITIONAL_EDGES) | set(TERMINAL_STAGES)
        assert wired == set(Stage)
        assert set(NODES) == set(Stage)

    def test_missing_node_rejected(self):
        nodes = dict(NODES)
        nodes.pop(Stage.SIMULATE)
        with pytest.raises(TransitionTableError):
            validate_transition_table(nodes=nodes)

    def test_unmapped_label_rejected(self):
        conditional = dict(CONDITIONAL_EDGES)
        conditional[Stage.GUARDIAN] = Transition(
            router=route_after_guardian,
            labels=GuardianRoute,
            targets={GuardianRoute.EXECUTE: Stage.EXECUTE},
        )
        with pytest.raises(TransitionTableError, match="unmapped"):
            validate_transition_table(conditional=conditional)

    def test_unreachable_stage_rejected(self):
        conditional = dict(CONDITIONAL_EDGES)
        conditional[Stage.GENERATE_DRAFT] = Transition(
            router=route_after_draft,
            labels=DraftRoute,
            targets={
                DraftRoute.DEEP_ANALYSIS: Stage.GUARDIAN,
                DraftRoute.GUARDIAN: Stage.GUARDIAN,
            },
        )
        with pytest.raises(TransitionTableError, match="unreachable"):
            validate_transition_table(conditional=conditional)

    def test_double_wiring_rejected(self):
        linear = dict(LINEAR_EDGES)
        linear[Stage.GUARDIAN] = Stage.EXECUTE
        with pytest.raises(TransitionTableError, match="exactly one"):
            validate_transition_table(linear=linear)

    def test_graph_compiles(self):
        graph = build_graph()
        assert set(Stage).issubset({name for name in graph.get_graph().nodes})

"""
Conditional routers.

Both routers are pure functions of the state: the same state always yields
the same label. Exploration sampling hashes the session id instead of
drawing random numbers, so a run is reproducible from its trace.
"""
import hashlib

from pulse_omega.graph.stages import DraftRoute, GuardianRoute
from pulse_omega.graph.state import PipelineState, preferences

DEFAULT_EXPLORATION_RATE = 0.1
DEEP_ANALYSIS_CONFIDENCE = 0.7
DEEP_ANALYSIS_MIN_STEPS = 3


def session_fraction(session_id: str) -> float:
    """Map a session id onto [0, 1) deterministically."""
    digest = hashlib.sha256((session_id or "").encode("utf-8")).hexdigest()
    return int(digest[:8], 16) / 0x100000000


def exploration_sampled(state: PipelineState) -> bool:
    prefs = preferences(state)
    if prefs.get("enable_exploration") is not True:
        return False
    try:
        rate = float(prefs.get("exploration_rate", DEFAULT_EXPLORATION_RATE))
    except (TypeError, ValueError):
        rate = DEFAULT_EXPLORATION_RATE
    return session_fraction(state.get("session_id") or "") < rate


def route_after_draft(state: PipelineState) -> DraftRoute:
    """Deep analysis needs enough trace to diagnose, plus a reason to look."""
    if len(state.get("reasoning_trace") or []) < DEEP_ANALYSIS_MIN_STEPS:
        return DraftRoute.GUARDIAN

    draft = state.get("draft")
    low_confidence = draft is not None and draft.confidence < DEEP_ANALYSIS_CONFIDENCE
    if state.get("errors") or low_confidence or exploration_sampled(state):
        return DraftRoute.DEEP_ANALYSIS
    return DraftRoute.GUARDIAN


def route_after_guardian(state: PipelineState) -> GuardianRoute:
    if state.get("approved") and state.get("should_auto_execute"):
        return GuardianRoute.EXECUTE
    return GuardianRoute.QUEUE_FOR_REVIEW

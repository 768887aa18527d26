from enum import Enum


class Stage(str, Enum):
    """Every node of the Omega graph."""
    OBSERVE = "observe"
    PREDICT_INTENT = "predict_intent"
    GENERATE_DRAFT = "generate_draft"
    DIAGNOSE = "diagnose"
    SIMULATE = "simulate"
    EVOLVE = "evolve"
    GUARDIAN = "guardian"
    EXECUTE = "execute"
    QUEUE_FOR_REVIEW = "queue_for_review"


class DraftRoute(str, Enum):
    """Labels of the post-draft router."""
    DEEP_ANALYSIS = "deep_analysis"
    GUARDIAN = "guardian"


class GuardianRoute(str, Enum):
    """Labels of the post-guardian router."""
    EXECUTE = "execute"
    QUEUE_FOR_REVIEW = "queue_for_review"

"""
HARD GUARD TESTS

Deterministic safety rules, evaluated without any oracle.
"""
import pytest

from pulse_omega.graph.hardguard import find_risk_keyword, hard_guard, is_communication
from pulse_omega.graph.state import apply_update, initial_state
from pulse_omega.schemas import CognitiveLimit, Draft, Simulation


def state_with(draft=None, preferences=None, **update):
    state = initial_state(None, "user-1", {"preferences": preferences or {}})
    return apply_update(state, {"draft": draft, **update})


def task_draft(**overrides):
    data = {
        "intent_id": "intent-1",
        "draft_type": "task",
        "title": "Prepare weekly sync agenda",
        "content": {"body": "List open items."},
        "confidence": 0.9,
    }
    data.update(overrides)
    return Draft(**data)


class TestHardGuardRules:
    """Each rule in isolation."""

    def test_clean_task_passes(self):
        result = hard_guard(state_with(task_draft()))
        assert result.hard_approved
        assert result.hard_blocks == []
        assert not result.requires_human_review

    def test_no_draft_blocks(self):
        result = hard_guard(state_with(None))
        assert not result.hard_approved
        assert result.requires_human_review

    def test_comms_without_permission_blocks(self):
        """Email at 0.95 confidence is still blocked without allow_auto_comms."""
        result = hard_guard(state_with(task_draft(draft_type="email", confidence=0.95)))
        assert not result.hard_approved
        assert any("allow_auto_comms" in block for block in result.hard_blocks)

    def test_comms_with_permission_passes(self):
        result = hard_guard(state_with(
            task_draft(draft_type="email"), preferences={"allow_auto_comms": True}
        ))
        assert result.hard_approved

    def test_truthy_string_is_not_permission(self):
        result = hard_guard(state_with(
            task_draft(draft_type="slack_message"), preferences={"allow_auto_comms": "yes"}
        ))
        assert not result.hard_approved

    def test_risk_keyword_names_category(self):
        draft = task_draft(content={"body": "Please send the wire transfer today."})
        result = hard_guard(state_with(draft))
        assert not result.hard_approved
        assert result.requires_human_review
        assert any("financial_transfer" in b and "wire transfer" in b for b in result.hard_blocks)

    def test_first_keyword_only(self):
        draft = task_draft(content={"body": "wire transfer, password and bitcoin"})
        result = hard_guard(state_with(draft))
        keyword_blocks = [b for b in result.hard_blocks if b.startswith("Risky content")]
        assert len(keyword_blocks) == 1

    def test_keyword_in_title(self):
        result = hard_guard(state_with(task_draft(title="Reset your PASSWORD")))
        assert any("credentials" in b for b in result.hard_blocks)

    def test_low_confidence_blocks_independently(self):
        """0.3 blocks on the confidence floor with no keyword or comms issue."""
        result = hard_guard(state_with(task_draft(confidence=0.3)))
        assert not result.hard_approved
        assert result.hard_blocks == ["Draft confidence 0.30 below floor 0.50"]

    def test_simulation_high_risk(self):
        sims = [Simulation(scenario="Client reacts badly", probability=0.4,
                           risks=["High risk of escalation"])]
        result = hard_guard(state_with(task_draft(), simulations=sims))
        assert "Simulation indicates high risk" in result.hard_blocks
        assert result.requires_human_review

    def test_simulation_abort(self):
        result = hard_guard(state_with(task_draft(), simulation_recommendation="abort"))
        assert "Simulation recommends abort" in result.hard_blocks

    def test_errors_require_review_without_blocking(self):
        result = hard_guard(state_with(task_draft(), errors=["Observer error: timeout"]))
        assert result.hard_approved
        assert result.requires_human_review

    def test_cognitive_issues_require_review(self):
        limit = CognitiveLimit(type="timing_error", description="Late signal")
        result = hard_guard(state_with(task_draft(), cognitive_issues=[limit]))
        assert result.hard_approved
        assert result.requires_human_review


class TestHelpers:
    """Classification helpers."""

    @pytest.mark.parametrize("draft_type", ["email", "SMS", "slack_message", "push_notification"])
    def test_communication_types(self, draft_type):
        assert is_communication(draft_type)

    @pytest.mark.parametrize("draft_type", ["task", "report", "meeting_prep"])
    def test_non_communication_types(self, draft_type):
        assert not is_communication(draft_type)

    def test_word_boundaries(self):
        """'irs' must not match inside 'first'."""
        assert find_risk_keyword("first things first") is None
        assert find_risk_keyword("File the IRS form") == ("tax_crypto", "irs")

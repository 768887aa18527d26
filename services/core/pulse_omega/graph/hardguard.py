"""
HARD GUARD

Deterministic safety rules evaluated before any auto-execution. Guardian
approval can never override a hard block.

Rules (first-class, code-based, no oracle involved):
1. a draft must exist
2. outbound communication drafts need ``preferences.allow_auto_comms``
3. risky keywords in the draft (money movement, credentials, legal, tax/crypto)
4. simulations flagging high risk or recommending abort/reject
5. draft confidence below CONFIDENCE_FLOOR
"""
import json
import re
from typing import Dict, List, Optional, Tuple

from pulse_omega.graph.state import PipelineState, preferences
from pulse_omega.schemas import Draft, HardGuardResult

CONFIDENCE_FLOOR = 0.5

COMMUNICATION_TYPES = ("email", "message", "sms", "slack", "notification")

RISK_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "financial_transfer": (
        "wire transfer", "bank transfer", "send money", "transfer funds",
        "routing number", "account number", "iban", "swift code",
    ),
    "credentials": (
        "password", "passcode", "api key", "secret key", "access token",
        "private key", "social security number", "ssn",
    ),
    "legal": (
        "lawsuit", "legal action", "binding agreement", "sign the contract",
        "settlement", "subpoena", "power of attorney",
    ),
    "tax_crypto": (
        "tax return", "tax filing", "irs", "crypto", "cryptocurrency",
        "bitcoin", "ethereum", "seed phrase", "wallet address",
    ),
}

_KEYWORD_PATTERNS: List[Tuple[str, str, "re.Pattern[str]"]] = [
    (category, keyword, re.compile(r"\b" + re.escape(keyword) + r"\b", re.IGNORECASE))
    for category, keywords in RISK_KEYWORDS.items()
    for keyword in keywords
]

_HIGH_RISK_MARKERS = (
    '"risk":"high"',
    '"risk_level":"high"',
    '"severity":"high"',
    "highrisk",
    "high_risk",
    "high-risk",
)

_ABORT_RECOMMENDATIONS = ("abort", "reject")


def is_communication(draft_type: str) -> bool:
    kind = (draft_type or "").lower()
    return any(token in kind for token in COMMUNICATION_TYPES)


def find_risk_keyword(text: str) -> Optional[Tuple[str, str]]:
    """First (category, keyword) found in ``text``, matched on word boundaries."""
    for category, keyword, pattern in _KEYWORD_PATTERNS:
        if pattern.search(text):
            return category, keyword
    return None


def _draft_text(draft: Draft) -> str:
    return json.dumps({"title": draft.title, "content": draft.content}, default=str, ensure_ascii=False)


def _simulation_blob(state: PipelineState) -> str:
    payload = {
        "simulations": [s.model_dump(mode="json") for s in state.get("simulations") or []],
        "recommendation": state.get("simulation_recommendation"),
    }
    return re.sub(r"\s+", "", json.dumps(payload, default=str).lower())


def simulation_flags(state: PipelineState) -> Tuple[bool, bool]:
    """(high_risk, abort_recommended) from the simulator's output."""
    blob = _simulation_blob(state)
    high_risk = any(marker in blob for marker in _HIGH_RISK_MARKERS)
    recommendation = (state.get("simulation_recommendation") or "").lower()
    abort = recommendation in _ABORT_RECOMMENDATIONS or any(
        f'"recommendation":"{value}"' in blob for value in _ABORT_RECOMMENDATIONS
    )
    return high_risk, abort


def hard_guard(state: PipelineState) -> HardGuardResult:
    draft = state.get("draft")
    blocks: List[str] = []

    if draft is None:
        blocks.append("No draft to review")
        high_risk = False
    else:
        if is_communication(draft.draft_type) and preferences(state).get("allow_auto_comms") is not True:
            blocks.append(
                f"External communication ({draft.draft_type}) requires allow_auto_comms"
            )

        hit = find_risk_keyword(_draft_text(draft))
        if hit is not None:
            category, keyword = hit
            blocks.append(f"Risky content [{category}]: '{keyword}'")

        high_risk, abort = simulation_flags(state)
        if high_risk:
            blocks.append("Simulation indicates high risk")
        if abort:
            blocks.append("Simulation recommends abort")

        if draft.confidence < CONFIDENCE_FLOOR:
            blocks.append(
                f"Draft confidence {draft.confidence:.2f} below floor {CONFIDENCE_FLOOR:.2f}"
            )

    requires_human_review = bool(
        blocks
        or high_risk
        or state.get("errors")
        or state.get("cognitive_issues")
    )
    return HardGuardResult(
        hard_approved=not blocks,
        hard_blocks=blocks,
        requires_human_review=requires_human_review,
    )

"""
Stage prompts for Pulse Omega.

Templates use ``$placeholders``; values are serialized to JSON before
substitution so braces in the schemas never clash with formatting.
"""
import json
from string import Template
from typing import Any

OBSERVE = Template("""You are the Observer module of Pulse Omega.
Analyze the current situation. Find patterns. Spot anomalies.

CURRENT SIGNAL:
$signal

RECENT OUTCOMES:
$outcomes

Respond with JSON only:
{"observations": [{"type": "pattern|anomaly|success|failure|opportunity|risk",
  "description": "...", "confidence": 0.0-1.0, "evidence": "..."}]}""")

PREDICT_INTENT = Template("""You are the Intent Prediction module of Pulse Omega.
Given a signal and user context, predict what the user needs before they ask.

SIGNAL:
$signal

OBSERVATIONS:
$observations

ACTIVE GOALS:
$goals

STRATEGIES THAT WORKED FOR THIS USER:
$strategies

TIME CONTEXT:
$time_context

Respond with JSON only:
{"predicted_need": "...", "confidence": 0.0-1.0, "reasoning": "...",
 "suggested_action": "...", "draft_type": "meeting_prep|email|report|action_plan|summary|task",
 "urgency": "immediate|soon|when_convenient"}""")

GENERATE_DRAFT = Template("""You are the Draft Generation module of Pulse Omega.
Create a complete, ready-to-use deliverable for the predicted intent.

INTENT:
$intent

USER PREFERENCES:
$preferences

USER STRATEGIES:
$strategies

Respond with JSON only:
{"title": "...", "draft_type": "...", "content": {"body": "...", "structured": {}},
 "confidence": 0.0-1.0}""")

DIAGNOSE = Template("""You are the Diagnoser module of Pulse Omega.
Identify cognitive limits and blind spots in the reasoning so far.

REASONING TRACE:
$trace

OBSERVATIONS:
$observations

Respond with JSON only:
{"cognitive_limits": [{"type": "prediction_blind_spot|domain_weakness|timing_error|confidence_miscalibration",
  "description": "...", "severity": "low|medium|high", "evidence": ["..."], "suggested_remedy": "..."}]}""")

SIMULATE = Template("""You are the Simulator module of Pulse Omega.
Simulate what happens if this draft is executed.

ACTION:
$action

KNOWN COGNITIVE LIMITS:
$limits

Respond with JSON only:
{"simulations": [{"scenario": "...", "probability": 0.0-1.0, "predicted_outcome": "...",
  "risks": ["..."], "opportunities": ["..."]}],
 "recommendation": "proceed|modify|abort"}""")

EVOLVE = Template("""You are the Evolver module of Pulse Omega.
Propose improvements that address these cognitive limits. Proposals are
reviewed separately; nothing is applied automatically.

COGNITIVE LIMITS:
$limits

Respond with JSON only:
{"improvements": [{"type": "prompt_adjustment|strategy_update|threshold_change|new_pattern",
  "target": "...", "current_state": {}, "proposed_change": {}, "expected_impact": "...", "risk": "..."}]}""")

GUARDIAN = Template("""You are the Guardian module of Pulse Omega.
Enforce safety constraints. Be strict on hard limits.

PROPOSED DRAFT: $draft
CONSTRAINTS: $constraints
DRAFT CONFIDENCE (RAW): $raw_confidence
DRAFT CONFIDENCE (CALIBRATED): $calibrated_confidence
USER AUTONOMY LEVEL: $autonomy_level ($autonomy_reason)
SIMULATIONS: $simulations
ESCALATION DECISION: $escalation

Respond with JSON only:
{"approved": true|false,
 "constraint_checks": [{"constraint": "...", "passed": true|false, "reason": "..."}],
 "modifications_required": [],
 "risk_assessment": "low|medium|high",
 "recommendation": "approve|modify|reject"}""")


def _dump(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, ensure_ascii=False)


def render(template: Template, **values: Any) -> str:
    return template.safe_substitute({key: _dump(value) for key, value in values.items()})

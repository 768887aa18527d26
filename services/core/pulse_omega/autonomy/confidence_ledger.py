"""
CONFIDENCE LEDGER
Tracks predictions against outcomes and calibrates raw confidence.

Calibration, per (user, stage) and confidence bucket:
    calibration_gap = avg_predicted - actual_success_rate
    calibrated      = clamp(raw - calibration_gap, 0, 1)

Rules:
- fewer than MIN_BUCKET_SAMPLES resolved predictions in the bucket -> raw
- only resolved predictions (outcome recorded) count
- recording a prediction never blocks the pipeline
"""
import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from pulse_omega.logging_config import get_logger
from pulse_omega.persistence.store import RecordStore, best_effort_write
from pulse_omega.schemas import ConfidenceEvent

logger = get_logger(__name__)


OUTCOME_SCORES = {"success": 1.0, "partial": 0.5}

PREDICTION_TYPES = {
    "intent_predictor": "intent",
    "draft_generator": "draft",
    "simulator": "simulation",
    "evolver": "improvement",
    "guardian": "guardian",
}


def confidence_bucket(confidence: float) -> str:
    if confidence < 0.5:
        return "low"
    if confidence < 0.7:
        return "medium"
    if confidence < 0.85:
        return "high"
    return "very_high"


def outcome_score(outcome: Optional[str]) -> float:
    return OUTCOME_SCORES.get(outcome or "", 0.0)


@dataclass
class CalibrationBucket:
    bucket: str
    avg_predicted: float
    actual_success_rate: float
    calibration_gap: float
    total_predictions: int


@dataclass
class EarnedAutonomy:
    level: int
    reason: str
    calibration_score: float


def calibration_buckets(
    events: List[ConfidenceEvent], node: Optional[str] = None
) -> Dict[str, CalibrationBucket]:
    """Aggregate resolved events into confidence buckets."""
    grouped: Dict[str, List[ConfidenceEvent]] = {}
    for event in events:
        if event.outcome is None:
            continue
        if node is not None and event.node != node:
            continue
        grouped.setdefault(confidence_bucket(event.predicted_confidence), []).append(event)

    buckets = {}
    for name, items in grouped.items():
        avg_predicted = sum(e.predicted_confidence for e in items) / len(items)
        success_rate = sum(outcome_score(e.outcome) for e in items) / len(items)
        buckets[name] = CalibrationBucket(
            bucket=name,
            avg_predicted=avg_predicted,
            actual_success_rate=success_rate,
            calibration_gap=avg_predicted - success_rate,
            total_predictions=len(items),
        )
    return buckets


class UserCalibration:
    """Calibration view for one user during one run."""

    def __init__(
        self,
        ledger: "ConfidenceLedger",
        user_id: str,
        history: List[ConfidenceEvent],
        session_id: Optional[str] = None,
    ):
        self._ledger = ledger
        self.user_id = user_id
        self.session_id = session_id
        self.history = list(history)

    def record_prediction(
        self,
        stage: str,
        predicted_confidence: float,
        context_snapshot: Optional[dict] = None,
    ) -> str:
        """Queue a prediction write and return the event id."""
        event = ConfidenceEvent(
            user_id=self.user_id,
            session_id=self.session_id,
            node=stage,
            prediction_type=PREDICTION_TYPES.get(stage, stage),
            predicted_confidence=predicted_confidence,
            context_snapshot=context_snapshot or {},
        )
        self._ledger.schedule_write(event)
        return event.id

    async def get_adjusted_confidence(self, stage: str, raw_confidence: float) -> float:
        bucket = calibration_buckets(self.history, node=stage).get(
            confidence_bucket(raw_confidence)
        )
        if bucket is None or bucket.total_predictions < self._ledger.MIN_BUCKET_SAMPLES:
            # Not enough data for this bucket
            return raw_confidence

        # Overconfident (gap > 0) pulls down, underconfident pushes up
        adjusted = raw_confidence - bucket.calibration_gap
        return max(0.0, min(1.0, adjusted))

    def earned_autonomy(self) -> EarnedAutonomy:
        buckets = list(calibration_buckets(self.history).values())
        if not buckets:
            return EarnedAutonomy(0, "No prediction history", 0.0)

        total = sum(b.total_predictions for b in buckets)
        weighted_gap = sum(b.calibration_gap * b.total_predictions for b in buckets) / total
        score = 1 - abs(weighted_gap)

        if total < 20:
            return EarnedAutonomy(0, "Insufficient history (< 20 predictions)", score)
        if score < 0.7:
            return EarnedAutonomy(1, "Calibration needs improvement", score)
        if total < 100 or score < 0.85:
            return EarnedAutonomy(2, "Building trust", score)
        if score >= 0.9 and total >= 200:
            return EarnedAutonomy(3, "Highly calibrated, earned full autonomy", score)
        return EarnedAutonomy(2, "Good calibration, moderate autonomy", score)


class ConfidenceLedger:
    """
    Process-wide ledger. Writes go through the record store in background
    tasks; ``drain`` waits for whatever is still in flight.
    """

    MIN_BUCKET_SAMPLES = 10

    def __init__(self, store: RecordStore, timeout_s: float = 10.0):
        self.store = store
        self.timeout_s = timeout_s
        self._pending: Set[asyncio.Task] = set()

    def for_user(
        self,
        user_id: str,
        history: List[ConfidenceEvent],
        session_id: Optional[str] = None,
    ) -> UserCalibration:
        return UserCalibration(self, user_id, history, session_id)

    def schedule_write(self, event: ConfidenceEvent) -> None:
        task = asyncio.create_task(best_effort_write(
            "confidence_event",
            lambda: self.store.insert_confidence_event(event),
            self.timeout_s,
            node=event.node,
            user_id=event.user_id,
        ))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self, timeout_s: Optional[float] = None) -> None:
        if not self._pending:
            return
        done, pending = await asyncio.wait(
            set(self._pending), timeout=timeout_s or self.timeout_s
        )
        if pending:
            logger.warning("confidence_writes_pending", count=len(pending))

    async def record_outcome(
        self, event_id: str, predicted_confidence: float, outcome: str
    ) -> bool:
        """Resolve a prediction so it counts toward calibration."""
        confidence_error = predicted_confidence - outcome_score(outcome)
        return await best_effort_write(
            "confidence_outcome",
            lambda: self.store.update_confidence_outcome(event_id, outcome, confidence_error),
            self.timeout_s,
            event_id=event_id,
        )

"""
AUTONOMY MODULE

Components:
- ConfidenceLedger: prediction/outcome ledger and confidence calibration
- AutonomyEngine: autonomy levels and constraint escalation
"""
from pulse_omega.autonomy.confidence_ledger import (
    CalibrationBucket,
    ConfidenceLedger,
    EarnedAutonomy,
    UserCalibration,
    calibration_buckets,
    confidence_bucket,
)
from pulse_omega.autonomy.engine import (
    AUTO_EXECUTE_MIN_LEVEL,
    AutonomyEngine,
    AutonomyInfo,
    can_auto_execute,
    constraint_applies,
)

__all__ = [
    'CalibrationBucket',
    'ConfidenceLedger',
    'EarnedAutonomy',
    'UserCalibration',
    'calibration_buckets',
    'confidence_bucket',
    'AUTO_EXECUTE_MIN_LEVEL',
    'AutonomyEngine',
    'AutonomyInfo',
    'can_auto_execute',
    'constraint_applies',
]

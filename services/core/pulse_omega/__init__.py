"""
PULSE OMEGA

Signal-to-action reasoning pipeline: a signal becomes either an
auto-executed action or a draft queued for human review, with a
deterministic safety gate in front of every execution.
"""
from pulse_omega.config import OmegaSettings
from pulse_omega.context import ContextProvider, StaticContextProvider
from pulse_omega.orchestrator import OmegaPipeline
from pulse_omega.schemas import Signal

__version__ = "0.3.0"

__all__ = [
    'OmegaPipeline',
    'OmegaSettings',
    'ContextProvider',
    'StaticContextProvider',
    'Signal',
]

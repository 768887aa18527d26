"""
Context providers.

Goals, preferences, strategies, recent outcomes, constraints, autonomy and
calibration history are read once per run into a ``UserContextSnapshot``.
Stages only ever see that snapshot.
"""
from typing import Dict, Optional, Protocol, runtime_checkable

from pulse_omega.schemas import UserContextSnapshot


@runtime_checkable
class ContextProvider(Protocol):
    async def load(self, user_id: str) -> UserContextSnapshot: ...


class StaticContextProvider:
    """Serves fixed snapshots, keyed by user."""

    def __init__(
        self,
        snapshots: Optional[Dict[str, UserContextSnapshot]] = None,
        default: Optional[UserContextSnapshot] = None,
    ):
        self._snapshots = dict(snapshots or {})
        self._default = default or UserContextSnapshot()

    def set(self, user_id: str, snapshot: UserContextSnapshot) -> None:
        self._snapshots[user_id] = snapshot

    async def load(self, user_id: str) -> UserContextSnapshot:
        return self._snapshots.get(user_id, self._default).model_copy(deep=True)

"""
DataSov Bridge - Lifecycle State Machine

    STOPPED  -> STARTING
    STARTING -> RUNNING | STOPPED   (STOPPED on startup failure)
    RUNNING  -> STOPPING
    STOPPING -> STOPPED

The orchestrator owns the only instance and drives it through start/stop;
nothing else can set the state.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from datasov.core.clock import Clock, utc_now
from datasov.core.errors import LifecycleTransitionError

logger = logging.getLogger(__name__)


class BridgeState(str, Enum):
    STOPPED = "STOPPED"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"


class LifecycleTransition(BaseModel):
    previous_state: BridgeState
    current_state: BridgeState
    trigger: str
    timestamp: datetime


class BridgeLifecycle:
    VALID_TRANSITIONS: dict[BridgeState, set[BridgeState]] = {
        BridgeState.STOPPED: {BridgeState.STARTING},
        BridgeState.STARTING: {BridgeState.RUNNING, BridgeState.STOPPED},
        BridgeState.RUNNING: {BridgeState.STOPPING},
        BridgeState.STOPPING: {BridgeState.STOPPED},
    }

    def __init__(self, clock: Clock = utc_now, log_size: int = 100) -> None:
        self._state = BridgeState.STOPPED
        self._clock = clock
        self._log_size = log_size
        self._transition_log: list[LifecycleTransition] = []

    @property
    def state(self) -> BridgeState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == BridgeState.RUNNING

    @property
    def last_transition(self) -> Optional[LifecycleTransition]:
        return self._transition_log[-1] if self._transition_log else None

    def history(self) -> list[LifecycleTransition]:
        return list(self._transition_log)

    def can_transition(self, target: BridgeState) -> bool:
        return target in self.VALID_TRANSITIONS.get(self._state, set())

    def transition_to(self, target: BridgeState, trigger: str) -> LifecycleTransition:
        """
        Move to ``target``.

        Raises:
            LifecycleTransitionError: transition not in VALID_TRANSITIONS
        """
        if not self.can_transition(target):
            raise LifecycleTransitionError(
                f"Invalid bridge transition: {self._state.value} -> {target.value}",
                {"from": self._state.value, "to": target.value, "trigger": trigger},
            )

        transition = LifecycleTransition(
            previous_state=self._state,
            current_state=target,
            trigger=trigger,
            timestamp=self._clock(),
        )
        self._state = target
        self._transition_log.append(transition)
        if len(self._transition_log) > self._log_size:
            del self._transition_log[0]

        logger.info(
            f"[BRIDGE] {transition.previous_state.value} -> {target.value} ({trigger})"
        )
        return transition

"""BLE connection state management."""

from enum import Enum
from threading import RLock
from typing import Dict, FrozenSet, List

from blelink.constants import logger


class ConnectionState(Enum):
    """Steps of a single connection attempt."""

    IDLE = "idle"
    ADAPTER_INITIALIZING = "adapter_initializing"
    CHECKING_EXISTING = "checking_existing"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    DISCOVERING_SERVICES = "discovering_services"
    MATCHING_CHARACTERISTICS = "matching_characteristics"
    SUBSCRIBING_NOTIFY = "subscribing_notify"
    READY = "ready"
    FAILED = "failed"


_TERMINAL_STATES = frozenset({ConnectionState.READY, ConnectionState.FAILED})

# Forward skips are allowed where a step is unnecessary (fast path, cached handles).
_VALID_TRANSITIONS: Dict[ConnectionState, FrozenSet[ConnectionState]] = {
    ConnectionState.IDLE: frozenset({ConnectionState.ADAPTER_INITIALIZING}),
    ConnectionState.ADAPTER_INITIALIZING: frozenset({ConnectionState.CHECKING_EXISTING}),
    ConnectionState.CHECKING_EXISTING: frozenset(
        {
            ConnectionState.SCANNING,
            ConnectionState.CONNECTING,
            ConnectionState.MATCHING_CHARACTERISTICS,
            ConnectionState.SUBSCRIBING_NOTIFY,
            ConnectionState.READY,
        }
    ),
    ConnectionState.SCANNING: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset(
        {
            ConnectionState.DISCOVERING_SERVICES,
            ConnectionState.MATCHING_CHARACTERISTICS,
            ConnectionState.SUBSCRIBING_NOTIFY,
            ConnectionState.READY,
        }
    ),
    ConnectionState.DISCOVERING_SERVICES: frozenset(
        {ConnectionState.MATCHING_CHARACTERISTICS}
    ),
    ConnectionState.MATCHING_CHARACTERISTICS: frozenset(
        {ConnectionState.SUBSCRIBING_NOTIFY, ConnectionState.READY}
    ),
    ConnectionState.SUBSCRIBING_NOTIFY: frozenset({ConnectionState.READY}),
    ConnectionState.READY: frozenset(),
    ConnectionState.FAILED: frozenset(),
}


class ConnectionStateTracker:
    """Validated state machine for one connection attempt.

    Every transition is checked against a fixed table and logged. FAILED is
    reachable from any non-terminal state; READY and FAILED are terminal.
    """

    def __init__(self, identifier: str):
        self.identifier = identifier
        self._state_lock = RLock()
        self._state = ConnectionState.IDLE
        self._history: List[ConnectionState] = [ConnectionState.IDLE]

    @property
    def state(self) -> ConnectionState:
        with self._state_lock:
            return self._state

    @property
    def history(self) -> List[ConnectionState]:
        """States visited so far, oldest first."""
        with self._state_lock:
            return list(self._history)

    @property
    def is_terminal(self) -> bool:
        return self.state in _TERMINAL_STATES

    def transition_to(self, new_state: ConnectionState) -> bool:
        """Apply `new_state` if the table allows it.

        Returns:
        -------
            True if the transition was valid and applied, False otherwise

        """
        with self._state_lock:
            if not self._is_valid_transition(self._state, new_state):
                logger.warning(
                    "Invalid state transition for %s: %s → %s",
                    self.identifier,
                    self._state.value,
                    new_state.value,
                )
                return False
            old_state = self._state
            self._state = new_state
            self._history.append(new_state)
            logger.debug(
                "State transition for %s: %s → %s",
                self.identifier,
                old_state.value,
                new_state.value,
            )
            return True

    def fail(self) -> bool:
        """Move to FAILED unless the attempt already finished."""
        return self.transition_to(ConnectionState.FAILED)

    @staticmethod
    def _is_valid_transition(
        from_state: ConnectionState, to_state: ConnectionState
    ) -> bool:
        if to_state is ConnectionState.FAILED:
            return from_state not in _TERMINAL_STATES
        return to_state in _VALID_TRANSITIONS.get(from_state, frozenset())

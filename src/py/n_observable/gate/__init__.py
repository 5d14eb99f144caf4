from enum import Enum
from threading import Lock
from typing import Callable, Optional

Teardown = Callable[[], None]


class GateState(Enum):
    ACTIVE = "active"
    TERMINATED = "terminated"


class Gate:
    """
    Two-state latch guarding a subscription.

    Only ``terminate()`` flips the state, and it does so at most once, so the
    caller that wins the flip is the only one that ever receives the teardown.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._state = GateState.ACTIVE
        self._teardown: Optional[Teardown] = None
        self._attached = False

    @property
    def state(self) -> GateState:
        return self._state

    def is_open(self) -> bool:
        return self._state is GateState.ACTIVE

    def attach(self, teardown: Teardown) -> Optional[Teardown]:
        """
        Store the teardown for the terminating caller.

        Returns the teardown back if the gate has already closed; the caller
        must run it, nobody else will.
        """
        with self._lock:
            if self._attached:
                raise RuntimeError("Teardown already attached.")
            self._attached = True
            if self._state is GateState.TERMINATED:
                return teardown
            self._teardown = teardown
            return None

    def terminate(self) -> tuple[bool, Optional[Teardown]]:
        """
        Close the gate.

        Returns ``(True, teardown)`` for the first caller only; every later
        caller gets ``(False, None)``.
        """
        with self._lock:
            if self._state is GateState.TERMINATED:
                return False, None
            self._state = GateState.TERMINATED
            teardown, self._teardown = self._teardown, None
            return True, teardown

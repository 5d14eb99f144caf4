"""Push-based observable streams with explicit completion, errors and cancellation.

Each ``subscribe`` call runs the producer once for that subscriber; the
returned handle can only ``unsubscribe()``.
"""

from .core import (
    Handlers,
    IObserver,
    ISubscription,
    Observable,
    Observer,
    ObserverError,
    Subscription,
)
from .gate import Gate, GateState

__all__ = [
    "Gate",
    "GateState",
    "Handlers",
    "IObserver",
    "ISubscription",
    "Observable",
    "Observer",
    "ObserverError",
    "Subscription",
]

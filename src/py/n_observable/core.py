import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar, Union
from typing_extensions import override

from .gate import Gate, GateState, Teardown

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ObserverError(Exception):
    """Raised by a ``next`` handler to reject a single value without ending the stream."""


@dataclass(frozen=True)
class Handlers(Generic[T]):
    next: Optional[Callable[[T], None]] = None
    error: Optional[Callable[[Exception], None]] = None
    complete: Optional[Callable[[], None]] = None


class IObserver(Generic[T]):
    def next(self, value: T) -> None:
        """
        Deliver a value to the consumer.
        """
        raise NotImplementedError

    def error(self, error: Exception) -> None:
        """
        End the stream with an error.
        """
        raise NotImplementedError

    def complete(self) -> None:
        """
        End the stream normally.
        """
        raise NotImplementedError


class ISubscription:
    def unsubscribe(self) -> None:
        """
        Stop delivering values and run the teardown.
        """
        raise NotImplementedError


class Observer(IObserver[T], ISubscription, Generic[T]):
    """
    Per-subscription receiver that enforces the terminal-state rules.

    No handler fires once the observer has terminated, and the teardown runs
    exactly once whichever of ``error``, ``complete`` or ``unsubscribe`` gets
    there first.
    """

    def __init__(self, handlers: Handlers[T]) -> None:
        self.handlers = handlers
        self._gate = Gate()
        self._task: Optional["asyncio.Future[Optional[Teardown]]"] = None

    @property
    def is_terminated(self) -> bool:
        return self._gate.state is GateState.TERMINATED

    @override
    def next(self, value: T) -> None:
        if not self._gate.is_open() or self.handlers.next is None:
            return
        try:
            self.handlers.next(value)
        except ObserverError:
            logger.exception("Value rejected by next handler.")
        except Exception:
            logger.exception("Next handler failed.")
            raise

    @override
    def error(self, error: Exception) -> None:
        closed, teardown = self._gate.terminate()
        if not closed:
            return
        logger.debug("Observer terminated by error: %r", error)
        try:
            if self.handlers.error is not None:
                self._dispatch(self.handlers.error, error)
        finally:
            self._run_teardown(teardown)

    @override
    def complete(self) -> None:
        closed, teardown = self._gate.terminate()
        if not closed:
            return
        logger.debug("Observer completed.")
        try:
            if self.handlers.complete is not None:
                self._dispatch(self.handlers.complete)
        finally:
            self._run_teardown(teardown)

    @override
    def unsubscribe(self) -> None:
        closed, teardown = self._gate.terminate()
        if not closed:
            return
        logger.debug("Observer unsubscribed.")
        self._run_teardown(teardown)

    def set_teardown(self, teardown: Teardown) -> None:
        """
        Register the producer's cleanup. Runs it straight away if the stream
        has already ended.
        """
        late = self._gate.attach(teardown)
        if late is not None:
            logger.debug("Teardown attached after termination, running now.")
            self._run_teardown(late)

    def _on_producer_done(self, task: "asyncio.Future[Optional[Teardown]]") -> None:
        self._task = None
        if task.cancelled():
            logger.debug("Asynchronous producer cancelled.")
            return
        exc = task.exception()
        if exc is not None:
            if not isinstance(exc, Exception):
                raise exc
            self.error(exc)
            return
        result = task.result()
        if callable(result):
            self.set_teardown(result)

    @staticmethod
    def _dispatch(handler: Callable[..., None], *args: object) -> None:
        try:
            handler(*args)
        except Exception:
            logger.exception("Terminal handler failed.")
            raise

    @staticmethod
    def _run_teardown(teardown: Optional[Teardown]) -> None:
        if teardown is None:
            return
        try:
            teardown()
        except Exception:
            logger.exception("Teardown failed.")
            raise


Producer = Callable[
    [Observer[T]],
    Union[Optional[Teardown], Awaitable[Optional[Teardown]]],
]


class Subscription(ISubscription):
    def __init__(self, observer: Observer[Any]) -> None:
        self._observer = observer

    @override
    def unsubscribe(self) -> None:
        self._observer.unsubscribe()


class Observable(Generic[T]):
    """
    Cold, unicast stream. Each ``subscribe`` runs the producer again with its
    own ``Observer``.

    The producer may return a zero-argument teardown, nothing, or an
    awaitable resolving to either; awaitables are scheduled on the running
    event loop.
    """

    def __init__(self, producer: Producer[T]) -> None:
        self._producer = producer

    @classmethod
    def from_iterable(cls, values: Iterable[T]) -> "Observable[T]":
        items = list(values)

        def producer(observer: Observer[T]) -> Teardown:
            for value in items:
                observer.next(value)
            observer.complete()

            def teardown() -> None:
                logger.debug("unsubscribed")

            return teardown

        return cls(producer)

    def subscribe(
        self,
        handlers: Optional[Handlers[T]] = None,
        *,
        next: Optional[Callable[[T], None]] = None,
        error: Optional[Callable[[Exception], None]] = None,
        complete: Optional[Callable[[], None]] = None,
    ) -> Subscription:
        if handlers is None:
            handlers = Handlers(next=next, error=error, complete=complete)
        elif next is not None or error is not None or complete is not None:
            raise TypeError("Pass either a Handlers instance or callbacks, not both.")

        observer: Observer[T] = Observer(handlers)
        logger.debug("Subscribing observer %r.", observer)
        try:
            result = self._producer(observer)
        except Exception as exc:
            logger.debug("Producer raised during subscribe.", exc_info=True)
            observer.error(exc)
            return Subscription(observer)

        if inspect.isawaitable(result):
            self._schedule(observer, result)
        elif callable(result):
            observer.set_teardown(result)

        return Subscription(observer)

    @staticmethod
    def _schedule(observer: Observer[T], awaitable: Awaitable[Optional[Teardown]]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise RuntimeError(
                "Asynchronous producers need a running event loop."
            ) from None
        task = asyncio.ensure_future(awaitable, loop=loop)
        observer._task = task
        task.add_done_callback(observer._on_producer_done)

"""
Observer primitives behind the planner's live collections.

A subscriber receives the current snapshot immediately, then a new full
snapshot after every relevant write (replace-on-write, never a diff).
Cancelling a subscription only drops the callback; stored data is untouched.
"""
import logging
import threading
from typing import Any, Callable, Generic, Iterable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChangeHub:
    """Routes "table changed" notifications from the stores to live queries."""

    def __init__(self):
        self._lock = threading.RLock()
        self._listeners: dict[str, list[Callable[[], None]]] = {}

    def listen(self, tables: Iterable[str], listener: Callable[[], None]) -> Callable[[], None]:
        """Register listener for the given tables. Returns a function that removes it."""
        tables = tuple(tables)
        with self._lock:
            for table in tables:
                self._listeners.setdefault(table, []).append(listener)

        def remove() -> None:
            with self._lock:
                for table in tables:
                    listeners = self._listeners.get(table, [])
                    if listener in listeners:
                        listeners.remove(listener)

        return remove

    def notify(self, *tables: str) -> None:
        # A listener watching several of the tables runs once per notification
        with self._lock:
            pending: list[Callable[[], None]] = []
            for table in tables:
                for listener in self._listeners.get(table, []):
                    if listener not in pending:
                        pending.append(listener)
        logger.debug("Change in %s -> %d listener(s)", ",".join(tables), len(pending))
        # The write is already committed; a failing listener must not reach the writer
        for listener in pending:
            try:
                listener()
            except Exception:
                logger.exception("Change listener failed for %s", ",".join(tables))

    def listener_count(self, table: Optional[str] = None) -> int:
        with self._lock:
            if table is not None:
                return len(self._listeners.get(table, []))
            return sum(len(listeners) for listeners in self._listeners.values())


class Subscription:
    """Handle returned by Observable.subscribe. Usable as a context manager."""

    def __init__(self, source: "Observable", callback: Callable[[Any], None]):
        self._source = source
        self._lock = threading.RLock()
        self._delivered = 0
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._source._unsubscribe(self)

    def _deliver(self, seq: int, snapshot: Any) -> None:
        # Snapshots older than the last one delivered are dropped
        with self._lock:
            if not self.active or seq <= self._delivered:
                return
            self._delivered = seq
            self.callback(snapshot)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()


class Observable(Generic[T]):
    """
    Base for live values.
    Subclasses provide `value` and may hook _activate/_deactivate, which run when
    the first consumer arrives and when the last one leaves.

    Every snapshot is numbered under the lock when it is taken. Delivery happens
    outside the lock, so a subscriber fed from several writer threads still ends
    on the newest snapshot.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._seq = 0
        self._subscriptions: list[Subscription] = []
        self._watchers: list[Callable[[], None]] = []

    @property
    def value(self) -> T:
        raise NotImplementedError

    @property
    def active(self) -> bool:
        with self._lock:
            return bool(self._subscriptions or self._watchers)

    def _snapshot(self) -> tuple[int, T]:
        with self._lock:
            self._seq += 1
            return self._seq, self.value

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        """Deliver the current snapshot to callback now and on every later change."""
        with self._lock:
            if not self.active:
                self._activate()
            seq, snapshot = self._snapshot()
            subscription = Subscription(self, callback)
            self._subscriptions.append(subscription)
        subscription._deliver(seq, snapshot)
        return subscription

    def watch(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a change listener that gets no snapshot. Returns its remover."""
        with self._lock:
            if not self.active:
                self._activate()
            self._watchers.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._watchers:
                    self._watchers.remove(listener)
                    if not self.active:
                        self._deactivate()

        return remove

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
                if not self.active:
                    self._deactivate()

    def _emit(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
            watchers = list(self._watchers)
            if not subscriptions and not watchers:
                return
            seq, snapshot = self._snapshot() if subscriptions else (0, None)
        # One failing consumer must not starve the others
        for subscription in subscriptions:
            try:
                subscription._deliver(seq, snapshot)
            except Exception:
                logger.exception("Live subscriber failed")
        for watcher in watchers:
            try:
                watcher()
            except Exception:
                logger.exception("Live watcher failed")

    def _activate(self) -> None:
        pass

    def _deactivate(self) -> None:
        pass


class StateCell(Observable[T]):
    """In-memory value; emits only when set to something different."""

    def __init__(self, initial: T):
        super().__init__()
        self._value = initial

    @property
    def value(self) -> T:
        with self._lock:
            return self._value

    def set(self, new_value: T) -> None:
        with self._lock:
            if new_value == self._value:
                return
            self._value = new_value
        self._emit()

    def update(self, fn: Callable[[T], T]) -> None:
        """Replace the value with fn(value) atomically, then emit outside the lock."""
        with self._lock:
            new_value = fn(self._value)
            if new_value == self._value:
                return
            self._value = new_value
        self._emit()


class LiveQuery(Observable[T]):
    """
    A query re-run on every notification for its tables (or change of a
    dependency) while it has consumers. Detaches from the hub when the last
    consumer cancels.
    """

    def __init__(
        self,
        fetch: Callable[[], T],
        *,
        hub: Optional[ChangeHub] = None,
        tables: Iterable[str] = (),
        depends_on: Iterable[Observable] = (),
    ):
        super().__init__()
        self._fetch = fetch
        self._hub = hub
        self._tables = tuple(tables)
        self._depends_on = tuple(depends_on)
        self._detachers: list[Callable[[], None]] = []

    @property
    def value(self) -> T:
        return self._fetch()

    def _activate(self) -> None:
        if self._hub is not None and self._tables:
            self._detachers.append(self._hub.listen(self._tables, self._emit))
        for source in self._depends_on:
            self._detachers.append(source.watch(self._emit))

    def _deactivate(self) -> None:
        detachers, self._detachers = self._detachers, []
        for detach in detachers:
            detach()

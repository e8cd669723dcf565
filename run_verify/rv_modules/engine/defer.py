"""Defer -- a handle settled from outside the run.

A Defer is shared: any number of runs (nested or independent) may
register it. Settlement state lives on the Defer; each run keeps its
own claim and waited bookkeeping in a DeferSet, so two runs watching
the same Defer never consume each other's settlement.

State machine per run:

    Defer:   Pending --resolve/reject--> Settled(value | error)
             Settled --clear()--> Pending (new cycle)
    Tracker: Unclaimed --wait() on Pending--> Claimed
             Claimed --settlement or wait timeout--> Unclaimed

A settled cycle can be claimed by wait() once per run; wait_again()
re-arms the claim, clear() starts a new cycle.
"""
from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from returns.result import Failure, Result, Success

from run_verify.rv_modules import io_ops
from run_verify.rv_modules.errors import DeferTimeoutError, UsageError, VerifyError

if TYPE_CHECKING:
    from collections.abc import Callable

    Outcome = Result[object, BaseException]

_defer_ids = itertools.count(1)


def _check_timeout(timeout_ms: int | None, what: str) -> int | None:
    if timeout_ms is None:
        return None
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms <= 0:
        msg = f"{what} expects a positive number of milliseconds, got {timeout_ms!r}"
        raise UsageError(msg, context={"timeout_ms": repr(timeout_ms)})
    return timeout_ms


class Defer:
    """Externally settled value a run can wait on.

    Put the Defer itself among the steps to make the run wait for it
    at the end (its value becomes the run result), or put
    defer.wait() where the value is needed. Settle it from the event
    loop thread; other threads should go through
    loop.call_soon_threadsafe(defer.resolve, value).
    """

    def __init__(self, timeout_ms: int | None = None) -> None:
        self.id = next(_defer_ids)
        self.timeout_ms = _check_timeout(timeout_ms, "create_defer")
        self._outcome: Outcome | None = None
        self._cycle = 0
        self._resolve_observers: list[Callable[[object], object]] = []
        self._reject_observers: list[Callable[[BaseException], object]] = []
        self._listeners: list[Callable[[Outcome], None]] = []
        self._timer: asyncio.TimerHandle | None = None

    def __repr__(self) -> str:
        state = "pending" if self._outcome is None else repr(self._outcome)
        return f"<Defer #{self.id} cycle={self._cycle} {state}>"

    @property
    def outcome(self) -> Outcome | None:
        """Settlement of the current cycle, or None while pending."""
        return self._outcome

    @property
    def cycle(self) -> int:
        return self._cycle

    def pending(self) -> bool:
        return self._outcome is None

    def resolve(self, value: object = None) -> None:
        self._settle(Success(value))

    def reject(self, error: BaseException | object) -> None:
        if not isinstance(error, BaseException):
            error = VerifyError(str(error), context={"value": error})
        self._settle(Failure(error))

    def on_resolve(self, observer: Callable[[object], object]) -> Defer:
        """Call observer(value) when the Defer resolves.

        Observers run synchronously in subscription order. If the
        Defer has already resolved, observer is called immediately.
        """
        self._resolve_observers.append(observer)
        if isinstance(self._outcome, Success):
            observer(self._outcome.unwrap())
        return self

    def on_reject(self, observer: Callable[[BaseException], object]) -> Defer:
        """Call observer(error) when the Defer rejects."""
        self._reject_observers.append(observer)
        if isinstance(self._outcome, Failure):
            observer(self._outcome.failure())
        return self

    def clear(self) -> None:
        """Forget the current settlement and start a new cycle."""
        self._disarm()
        self._outcome = None
        self._cycle += 1
        io_ops.logger.debug("defer #%d cleared, cycle %d", self.id, self._cycle)

    def wait(self, timeout_ms: int | None = None) -> DeferWait:
        """Step marker that waits for this Defer and yields its value.

        timeout_ms bounds this wait only; it is separate from the
        timeout given to create_defer().
        """
        return DeferWait(self, _check_timeout(timeout_ms, "wait"), rearm=False)

    def wait_again(self, timeout_ms: int | None = None) -> DeferWait:
        """Like wait(), but may re-read a cycle this run already waited on."""
        return DeferWait(self, _check_timeout(timeout_ms, "wait_again"), rearm=True)

    def _settle(self, outcome: Outcome) -> None:
        if self._outcome is not None:
            io_ops.logger.warning(
                "defer #%d already settled in cycle %d; ignoring %r",
                self.id, self._cycle, outcome,
            )
            return
        self._disarm()
        self._outcome = self._notify_observers(outcome)
        io_ops.logger.debug("defer #%d settled: %r", self.id, self._outcome)
        for listener in list(self._listeners):
            listener(self._outcome)

    def _notify_observers(self, outcome: Outcome) -> Outcome:
        payload: object
        observers: list[Callable[[Any], object]]
        if isinstance(outcome, Success):
            payload = outcome.unwrap()
            observers = list(self._resolve_observers)
        else:
            payload = outcome.failure()
            observers = list(self._reject_observers)
        for observer in observers:
            try:
                observer(payload)
            except Exception as exc:  # noqa: BLE001
                io_ops.logger.debug(
                    "defer #%d observer raised %r", self.id, exc,
                )
                return Failure(exc)
        return outcome

    def _subscribe(self, listener: Callable[[Outcome], None]) -> None:
        self._listeners.append(listener)

    def _unsubscribe(self, listener: Callable[[Outcome], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
        if not self._listeners:
            self._disarm()

    def _arm(self) -> None:
        if self.timeout_ms is None or self._outcome is not None or self._timer is not None:
            return
        self._timer = io_ops.call_later(self.timeout_ms, self._expire)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _expire(self) -> None:
        self._timer = None
        if self._outcome is None:
            self.reject(
                DeferTimeoutError(
                    f"defer timeout after {self.timeout_ms}ms",
                    origin="defer",
                    timeout_ms=self.timeout_ms or 0,
                    context={"defer_id": self.id},
                ),
            )


@dataclass(frozen=True)
class DeferWait:
    """Step marker produced by Defer.wait() / Defer.wait_again()."""

    defer: Defer
    timeout_ms: int | None = None
    rearm: bool = False


def create_defer(timeout_ms: int | None = None) -> Defer:
    return Defer(timeout_ms)


class _Tracker:
    """One run's view of one Defer."""

    def __init__(self, defer: Defer) -> None:
        self.defer = defer
        self.bare = False
        self.waited_ever = False
        self.settled_once = False
        self.last: Outcome | None = None
        self.waited_cycle: int | None = None
        self.claim: asyncio.Future[Outcome] | None = None
        self.unhandled: BaseException | None = None
        self.listener: Callable[[Outcome], None] | None = None


class DeferSet:
    """The Defers registered in one run, in declaration order.

    on_failure receives a rejection that no wait() in this run has
    claimed; the run latches it as its terminal failure.
    """

    def __init__(self, on_failure: Callable[[BaseException], None]) -> None:
        self._on_failure = on_failure
        self._trackers: dict[int, _Tracker] = {}
        self._changed = asyncio.Event()

    def __len__(self) -> int:
        return len(self._trackers)

    def register(self, defer: Defer, *, bare: bool) -> _Tracker:
        tracker = self._trackers.get(defer.id)
        if tracker is None:
            tracker = _Tracker(defer)
            self._trackers[defer.id] = tracker

            def listener(outcome: Outcome, tracker: _Tracker = tracker) -> None:
                self._on_settle(tracker, outcome)

            tracker.listener = listener
            defer._subscribe(listener)  # noqa: SLF001
            defer._arm()  # noqa: SLF001
            io_ops.logger.debug("defer #%d registered", defer.id)
            if defer.outcome is not None:
                tracker.settled_once = True
                tracker.last = defer.outcome
        if bare:
            tracker.bare = True
            # a rejection a wait step in this run already received is handled
            if (
                isinstance(defer.outcome, Failure)
                and tracker.unhandled is None
                and tracker.waited_cycle != defer.cycle
            ):
                self._promote(tracker, defer.outcome.failure())
        return tracker

    async def wait(
        self,
        marker: DeferWait,
        default_timeout_ms: int | None = None,
    ) -> object:
        """Run a wait step: return the settled value or raise its error."""
        defer = marker.defer
        tracker = self.register(defer, bare=False)
        tracker.waited_ever = True
        if tracker.claim is not None:
            msg = f"defer #{defer.id} already has an active wait"
            raise UsageError(msg, context={"defer_id": defer.id})
        outcome = defer.outcome
        if (
            outcome is not None
            and tracker.waited_cycle == defer.cycle
            and not marker.rearm
        ):
            msg = (
                f"defer #{defer.id} already waited;"
                " call clear() or wait_again() first"
            )
            raise UsageError(msg, context={"defer_id": defer.id})

        if outcome is None:
            outcome = await self._claim(
                tracker, marker.timeout_ms or default_timeout_ms,
            )
        if not defer.pending():
            tracker.waited_cycle = defer.cycle
        if isinstance(outcome, Failure):
            raise outcome.failure()
        return outcome.unwrap()

    async def _claim(self, tracker: _Tracker, timeout_ms: int | None) -> Outcome:
        loop = io_ops.running_loop()
        assert loop is not None  # noqa: S101
        claim: asyncio.Future[Outcome] = loop.create_future()
        tracker.claim = claim
        timer = None
        if timeout_ms is not None:

            def expire() -> None:
                if not claim.done():
                    claim.set_result(
                        Failure(
                            DeferTimeoutError(
                                f"defer wait timeout after {timeout_ms}ms",
                                origin="wait",
                                timeout_ms=timeout_ms,
                                context={"defer_id": tracker.defer.id},
                            ),
                        ),
                    )

            timer = io_ops.call_later(timeout_ms, expire)
        try:
            return await claim
        finally:
            tracker.claim = None
            if timer is not None:
                timer.cancel()

    def _on_settle(self, tracker: _Tracker, outcome: Outcome) -> None:
        tracker.settled_once = True
        tracker.last = outcome
        claim = tracker.claim
        if claim is not None and not claim.done():
            claim.set_result(outcome)
        elif isinstance(outcome, Failure):
            self._promote(tracker, outcome.failure())
        self._changed.set()

    def _promote(self, tracker: _Tracker, error: BaseException) -> None:
        io_ops.logger.debug(
            "defer #%d rejected with no waiter: %r", tracker.defer.id, error,
        )
        tracker.unhandled = error
        self._on_failure(error)

    async def wait_all(self) -> Result[None, BaseException]:
        """Suspend until every registered Defer has settled at least once."""
        while not all(t.settled_once for t in self._trackers.values()):
            self._changed.clear()
            await self._changed.wait()
        for tracker in self._trackers.values():
            if tracker.unhandled is not None:
                return Failure(tracker.unhandled)
        return Success(None)

    def compose(self, result: object) -> object:
        """Fold bare Defers' values into the run result.

        One bare Defer replaces the result with its value; several give
        a list in declaration order. With none, result is unchanged.
        """
        bare = [
            t for t in self._trackers.values() if t.bare and not t.waited_ever
        ]
        if not bare:
            return result
        values = [
            t.last.unwrap() if isinstance(t.last, Success) else None
            for t in bare
        ]
        return values[0] if len(values) == 1 else values

    def close(self) -> None:
        """Stop listening to every registered Defer."""
        for tracker in self._trackers.values():
            if tracker.listener is not None:
                tracker.defer._unsubscribe(tracker.listener)  # noqa: SLF001
                tracker.listener = None

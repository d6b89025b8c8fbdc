"""Per-session pollers for agent backends that only support pulling."""

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger

from relaybot.session.store import SessionStore, check_key

DEFAULT_POLL_INTERVAL_S = 3.0

PullFn = Callable[[str], Awaitable[list[dict[str, Any]]]]
DispatchFn = Callable[[dict[str, Any]], Awaitable[Any]]


class InboundPoller:
    """
    Pulls events for one user on a fixed interval and dispatches them.

    The loop only ends on ``stop()``/``cancel()`` or when the session it
    belongs to disappears; a failing pull just skips that tick.
    """

    def __init__(
        self,
        user_id: str,
        pull: PullFn,
        dispatch: DispatchFn,
        is_current: Callable[["InboundPoller"], Awaitable[bool]],
        interval_s: float = DEFAULT_POLL_INTERVAL_S,
    ):
        self.user_id = user_id
        self.pull = pull
        self.dispatch = dispatch
        self.is_current = is_current
        self.interval_s = interval_s
        self._running = False
        self._in_tick = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def active(self) -> bool:
        """True while the loop task has not finished, even after ``stop()``."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name=f"poller:{self.user_id}")
        logger.info(f"Poller started for {self.user_id} (every {self.interval_s}s)")

    def stop(self) -> None:
        """
        Stop polling. A tick already dispatching is allowed to finish, so a
        poller may stop itself from inside one of its own dispatches.
        """
        self._running = False
        if self._task and not self._in_tick:
            self._task.cancel()

    def cancel(self) -> None:
        """Stop immediately, interrupting any tick in progress."""
        self._running = False
        if self._task:
            self._task.cancel()

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_s)
                if self._running:
                    self._in_tick = True
                    try:
                        await self._tick()
                    finally:
                        self._in_tick = False
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Poller error for {self.user_id}: {e}")

    async def _still_current(self) -> bool:
        if not self._running:
            return False
        if not await self.is_current(self):
            logger.info("Session for {} is gone, poller exiting", self.user_id)
            self._running = False
            return False
        return True

    async def _tick(self) -> None:
        if not await self._still_current():
            return

        try:
            events = await self.pull(self.user_id)
        except Exception as e:
            logger.warning(f"Polling agent backend for {self.user_id} failed: {e}")
            return

        # The session may have ended while the pull was in flight.
        if not await self._still_current():
            return

        for event in events:
            if not self._running:
                break
            try:
                await self.dispatch(event)
            except Exception as e:
                logger.warning(f"Dispatching polled event for {self.user_id} failed: {e}")


class PollerRegistry:
    """Keeps at most one running poller per user."""

    def __init__(self, store: SessionStore, interval_s: float = DEFAULT_POLL_INTERVAL_S):
        self.store = store
        self.interval_s = interval_s
        self._pollers: dict[str, InboundPoller] = {}
        # Stopped pollers still finishing a tick; cancelled by stop_all().
        self._retired: set[InboundPoller] = set()
        self._pull: PullFn | None = None
        self._dispatch: DispatchFn | None = None

    def bind(self, pull: PullFn, dispatch: DispatchFn) -> None:
        """Set where pollers fetch events from and where they send them."""
        self._pull = pull
        self._dispatch = dispatch

    def get(self, user_id: str) -> InboundPoller | None:
        return self._pollers.get(user_id)

    def __len__(self) -> int:
        return sum(1 for p in self._pollers.values() if p.running)

    async def start(self, user_id: str) -> InboundPoller:
        """Start a poller for *user_id*, replacing any poller it already has."""
        check_key(user_id)
        if self._pull is None or self._dispatch is None:
            raise RuntimeError("PollerRegistry.bind() must be called before starting pollers")

        # Cancel, replace and record without suspending in between.
        old = self._pollers.pop(user_id, None)
        if old is not None:
            self._retire(old)
            logger.info("Replacing poller for {}", user_id)

        poller = InboundPoller(
            user_id,
            pull=self._pull,
            dispatch=self._dispatch,
            is_current=self._is_current,
            interval_s=self.interval_s,
        )
        self._pollers[user_id] = poller
        poller.start()
        await self.store.merge(user_id, {"poller_handle": poller})
        return poller

    async def stop(self, user_id: str) -> bool:
        """
        Stop the poller recorded on the user's session.

        Returns:
            True if the session existed and had a running poller.
        """
        session = await self.store.get(user_id)
        registered = self._pollers.pop(user_id, None)

        handle = session.poller_handle if session else None
        if registered is not None and registered is not handle:
            self._retire(registered)

        if handle is None or not handle.running:
            return False

        self._retire(handle)
        await self.store.merge(user_id, {"poller_handle": None})
        logger.info("Stopped poller for {}", user_id)
        return True

    def stop_all(self) -> None:
        for poller in [*self._pollers.values(), *self._retired]:
            poller.cancel()
        self._pollers.clear()
        self._retired.clear()

    def _retire(self, poller: InboundPoller) -> None:
        poller.stop()
        self._retired = {p for p in self._retired if p.active}
        if poller.active:
            self._retired.add(poller)

    async def _is_current(self, poller: InboundPoller) -> bool:
        session = await self.store.get(poller.user_id)
        if session is not None and session.poller_handle is poller:
            return True
        if self._pollers.get(poller.user_id) is poller:
            del self._pollers[poller.user_id]
        return False

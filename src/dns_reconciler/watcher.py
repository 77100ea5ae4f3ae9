"""
Propagation Watcher.

Polls a set of resolvers until every one of them serves the target value, the
timeout elapses, or the caller cancels. The session is an explicit state
machine: PENDING -> {CONVERGED, TIMED_OUT, CANCELLED}, terminal once reached.

Between ticks the watcher waits on the cancel token with a timeout, so a
cancel is observed without waiting out the interval. A cancel that arrives
during a tick wins the race against the tick; the tick's results are
discarded. Ticks are not retried: the next tick is the retry.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from .audit_logger import AuditLogger, LoggingMixin
from .config import validate_server, validate_watch_parameters
from .enums import LookupStatus, PropagationState, Transport
from .exceptions import ConfigError
from .models import Observation, PropagationSession, PropagationTarget, ServerLookupResult
from .normalizer import comparison_key, normalize_data, normalize_name
from .resolver import Resolver


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PropagationWatcher(LoggingMixin):
    """Drives PropagationSessions against a Resolver."""

    COMPONENT = "PropagationWatcher"

    def __init__(
        self,
        resolver: Resolver,
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], str] = utc_now,
    ) -> None:
        """
        Initialize the watcher.

        Args:
            resolver: Resolver used for the per-tick fan-out
            logger: Optional audit logger
            clock: Monotonic clock in seconds, used for the timeout
            now: Wall-clock timestamp source for observations
        """
        self._resolver = resolver
        self._logger = logger
        self._clock = clock
        self._now = now

    async def watch(
        self,
        target: PropagationTarget,
        servers: list[str],
        interval: float,
        timeout: float,
        cancel_token: Optional[asyncio.Event] = None,
        transport: Optional[Transport] = None,
    ) -> PropagationSession:
        """
        Watch until convergence, timeout or cancellation.

        Args:
            target: Name, type and value to wait for
            servers: Resolvers that must all serve the value
            interval: Seconds between ticks
            timeout: Total seconds before giving up
            cancel_token: Event that cancels the watch when set
            transport: Transport for the per-server queries

        Returns:
            The finished session (state is always terminal)

        Raises:
            ConfigError: On invalid parameters; raised before any query
        """
        transport = transport or self._resolver.config.default_transport
        target = self._validate(target, servers, interval, timeout, transport)
        token = cancel_token or asyncio.Event()

        session = PropagationSession(
            target=target,
            servers=tuple(servers),
            started_at=self._now(),
        )
        self._log_info(
            self.COMPONENT,
            f"Watching {target.name} {target.type.value} on {len(servers)} server(s)",
            {
                "expected": target.expected_value.to_text(),
                "servers": list(servers),
                "interval": interval,
                "timeout": timeout,
            },
        )

        start = self._clock()
        while True:
            if token.is_set():
                self._finish(session, PropagationState.CANCELLED)
                break

            tick = session.ticks
            observations = await self._run_tick(session, tick, token, transport)
            if observations is None:
                self._finish(session, PropagationState.CANCELLED)
                break

            session.record(observations)
            session.ticks = tick + 1
            matched = sum(1 for o in observations if o.matched)
            self._log_debug(
                self.COMPONENT,
                f"Tick {tick}: {matched}/{len(observations)} server(s) converged",
                {"tick": tick},
            )

            if matched == len(servers):
                self._finish(session, PropagationState.CONVERGED)
                break

            remaining = timeout - (self._clock() - start)
            if remaining <= 0:
                self._finish(session, PropagationState.TIMED_OUT)
                break

            if await self._wait(token, min(interval, remaining)):
                self._finish(session, PropagationState.CANCELLED)
                break

            if self._clock() - start >= timeout:
                self._finish(session, PropagationState.TIMED_OUT)
                break

        return session

    def watch_blocking(
        self,
        target: PropagationTarget,
        servers: list[str],
        interval: float,
        timeout: float,
        transport: Optional[Transport] = None,
    ) -> PropagationSession:
        """Synchronous wrapper for callers outside an event loop."""
        return asyncio.run(self.watch(target, servers, interval, timeout, transport=transport))

    def _validate(
        self,
        target: PropagationTarget,
        servers: list[str],
        interval: float,
        timeout: float,
        transport: Transport,
    ) -> PropagationTarget:
        validate_watch_parameters(interval, timeout, servers)
        for server in servers:
            validate_server(server, transport)
        try:
            comparison_key(target.type, target.expected_value)
            return PropagationTarget(
                name=normalize_name(target.name),
                type=target.type,
                expected_value=normalize_data(target.expected_value),
            )
        except TypeError as e:
            raise ConfigError(
                code="invalid_target",
                message=str(e),
                details={"name": target.name, "type": target.type.value},
            )

    async def _run_tick(
        self,
        session: PropagationSession,
        tick: int,
        token: asyncio.Event,
        transport: Transport,
    ) -> Optional[list[Observation]]:
        """Fan out one tick; None if the cancel token won the race."""
        target = session.target
        tick_task = asyncio.ensure_future(
            self._resolver.fan_out(target.name, target.type, list(session.servers), transport=transport)
        )
        cancel_task = asyncio.ensure_future(token.wait())
        done, _ = await asyncio.wait({tick_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)

        if tick_task not in done:
            # in-flight queries finish on their own; their results are dropped
            tick_task.add_done_callback(_discard_result)
            return None

        cancel_task.cancel()
        timestamp = self._now()
        return [self._observe(target, tick, timestamp, r) for r in tick_task.result()]

    async def _wait(self, token: asyncio.Event, seconds: float) -> bool:
        """Sleep up to `seconds`; True if the token was set meanwhile."""
        try:
            await asyncio.wait_for(token.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    @staticmethod
    def _observe(
        target: PropagationTarget,
        tick: int,
        timestamp: str,
        answer: ServerLookupResult,
    ) -> Observation:
        result = answer.result
        expected_key = comparison_key(target.type, target.expected_value)
        matched = result.status == LookupStatus.FOUND and any(
            comparison_key(target.type, r.data) == expected_key for r in result.records
        )
        return Observation(
            timestamp=timestamp,
            tick=tick,
            server=answer.server,
            status=result.status,
            values=tuple(r.data.to_text() for r in result.records),
            matched=matched,
            error=result.error.message if result.error else None,
        )

    def _finish(self, session: PropagationSession, state: PropagationState) -> None:
        session.transition_to(state, self._now())
        self._log_info(
            self.COMPONENT,
            f"Watch {state.value} after {session.ticks} tick(s)",
            {"name": session.target.name, "type": session.target.type.value},
        )


def _discard_result(task: "asyncio.Future") -> None:
    if not task.cancelled():
        task.exception()

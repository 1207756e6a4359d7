"""
Correlation registry for request/response calls over the control channel.

The control channel is a message bus: the extension replies whenever it
finishes an action, in any order. This registry turns it back into awaitable
calls by keying each in-flight action on a correlation ID, with a timeout
ceiling per call.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime

from .errors import ActionTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_ACTION_TIMEOUT = 15.0


@dataclass
class PendingRequest:
    """A single in-flight extension call."""
    correlation_id: str
    action: str
    future: asyncio.Future
    timer: asyncio.TimerHandle
    timeout: float
    owner: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    def age_seconds(self) -> float:
        """Seconds since the call was registered."""
        return (datetime.now() - self.created_at).total_seconds()


class CorrelationRegistry:
    """
    Registry of pending extension calls keyed by correlation ID.

    Every entry leaves the registry exactly once, through ``_settle``:
    on a matching reply, on timeout, on drain, or when the awaiting caller is
    cancelled. Late or duplicate replies for IDs that already left are
    ignored rather than raised, so a reply racing its own timeout cannot
    crash the process.

    All methods must be called from the event loop thread.
    """

    def __init__(self, timeout: float = DEFAULT_ACTION_TIMEOUT):
        """
        Initialize the registry.

        Args:
            timeout: Default per-call timeout ceiling in seconds
        """
        self.timeout = timeout
        self._pending: Dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, correlation_id: object) -> bool:
        return correlation_id in self._pending

    def register(
        self,
        correlation_id: str,
        action: str,
        owner: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> PendingRequest:
        """
        Register a new pending call and arm its timeout.

        Args:
            correlation_id: Fresh identifier for the call
            action: Extension action type, kept for diagnostics
            owner: Session that issued the call, if any
            timeout: Per-call ceiling overriding the registry default

        Returns:
            The pending entry; await ``entry.future`` for the reply

        Raises:
            ValueError: If the correlation ID is already live
        """
        if correlation_id in self._pending:
            raise ValueError(f"Correlation ID already registered: {correlation_id}")

        loop = asyncio.get_running_loop()
        effective_timeout = self.timeout if timeout is None else timeout

        future = loop.create_future()
        timer = loop.call_later(effective_timeout, self._expire, correlation_id)

        entry = PendingRequest(
            correlation_id=correlation_id,
            action=action,
            future=future,
            timer=timer,
            timeout=effective_timeout,
            owner=owner
        )
        self._pending[correlation_id] = entry
        future.add_done_callback(lambda f: self._discard_cancelled(correlation_id, f))

        logger.debug(f"Registered pending call {correlation_id} ({action}), {len(self._pending)} in flight")
        return entry

    def resolve(self, correlation_id: str, value: Any) -> bool:
        """
        Fulfill a pending call with the extension's result.

        Returns:
            True if a live entry was settled, False for unknown IDs
        """
        return self._settle(correlation_id, value=value)

    def reject(self, correlation_id: str, error: BaseException) -> bool:
        """
        Fail a pending call.

        Returns:
            True if a live entry was settled, False for unknown IDs
        """
        return self._settle(correlation_id, error=error)

    def drain_all(self, error: BaseException) -> int:
        """
        Reject every outstanding call and clear the registry.

        Args:
            error: Exception delivered to every waiting caller

        Returns:
            Number of calls rejected
        """
        drained = 0
        for correlation_id in list(self._pending):
            if self._settle(correlation_id, error=error):
                drained += 1

        if drained:
            logger.info(f"Drained {drained} pending call(s): {error}")
        return drained

    def reject_owned(self, owner: str, error: BaseException) -> int:
        """
        Reject the outstanding calls issued by one owner.

        Args:
            owner: Session ID the calls were registered under
            error: Exception delivered to the waiting callers

        Returns:
            Number of calls rejected
        """
        owned = [cid for cid, entry in self._pending.items() if entry.owner == owner]
        rejected = sum(1 for cid in owned if self._settle(cid, error=error))

        if rejected:
            logger.info(f"Abandoned {rejected} pending call(s) for session {owner}")
        return rejected

    def describe_pending(self) -> List[Dict[str, Any]]:
        """List in-flight calls, oldest first."""
        entries = sorted(self._pending.values(), key=lambda e: e.created_at)
        return [
            {
                "id": entry.correlation_id,
                "action": entry.action,
                "owner": entry.owner,
                "age_seconds": round(entry.age_seconds(), 3),
                "timeout": entry.timeout
            }
            for entry in entries
        ]

    def _settle(
        self,
        correlation_id: str,
        value: Any = None,
        error: Optional[BaseException] = None
    ) -> bool:
        entry = self._pending.pop(correlation_id, None)
        if entry is None:
            return False

        entry.timer.cancel()

        if entry.future.done():
            return False

        if error is not None:
            entry.future.set_exception(error)
        else:
            entry.future.set_result(value)
        return True

    def _expire(self, correlation_id: str):
        entry = self._pending.get(correlation_id)
        if entry is None:
            return

        logger.warning(
            f"Extension call {correlation_id} ({entry.action}) timed out after {entry.timeout:g}s"
        )
        self._settle(
            correlation_id,
            error=ActionTimeoutError(
                f"Browser extension did not respond to '{entry.action}' within {entry.timeout:g}s"
            )
        )

    def _discard_cancelled(self, correlation_id: str, future: asyncio.Future):
        if not future.cancelled():
            return

        entry = self._pending.get(correlation_id)
        if entry is not None and entry.future is future:
            del self._pending[correlation_id]
            entry.timer.cancel()
            logger.debug(f"Caller cancelled pending call {correlation_id} ({entry.action})")

"""Per-client session state: the channel, in-flight invocations and lifecycle flags."""
import asyncio
import itertools
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine, Dict, List, Optional, Set

from gateway_service.core.errors import ChannelClosed
from gateway_service.core.interfaces import Channel, ResponseStream
from gateway_service.core.logging import logger
from gateway_service.protocol.orchestration.stream import CancellationToken


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PendingInvocation:
    """One in-flight request. Lives until its terminal envelope is written or it is cancelled."""

    def __init__(self, key: int, request_id: Any, stream: ResponseStream):
        self.key = key
        self.request_id = request_id
        self.stream = stream
        self.token = CancellationToken()
        self.streaming = False
        self.done = False

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self) -> None:
        if not self.done:
            self.token.cancel()


class Session:
    def __init__(
        self,
        session_id: str,
        channel: Channel,
        on_close: Optional[Callable[["Session"], Any]] = None,
    ):
        self.id = session_id
        self.created_at = _utcnow()
        self.last_active = self.created_at
        self.channel = channel
        self.initialized = False
        self._closed = False
        self._on_close = on_close
        self._seq = itertools.count(1)
        self._pending: Dict[int, PendingInvocation] = {}
        self._tasks: Set[asyncio.Task] = set()
        # peer-side close is an implicit termination
        channel.add_close_callback(self._on_channel_closed)

    @property
    def closed(self) -> bool:
        return self._closed or self.channel.closed

    @property
    def pending(self) -> List[PendingInvocation]:
        return list(self._pending.values())

    def touch(self) -> None:
        self.last_active = _utcnow()

    def idle_seconds(self, now: Optional[datetime] = None) -> float:
        return ((now or _utcnow()) - self.last_active).total_seconds()

    def open_invocation(self, request_id: Any) -> PendingInvocation:
        if self.closed:
            raise ChannelClosed(f"session {self.id} is closed")
        stream = self.channel.open_stream(request_id)
        pending = PendingInvocation(next(self._seq), request_id, stream)
        self._pending[pending.key] = pending
        stream.add_close_callback(pending.cancel)
        return pending

    def release(self, pending: PendingInvocation) -> None:
        pending.done = True
        self._pending.pop(pending.key, None)

    def find_pending(self, request_id: Any) -> List[PendingInvocation]:
        return [p for p in self._pending.values() if p.request_id == request_id]

    def cancel_request(self, request_id: Any) -> int:
        """Caller-initiated abort of every in-flight invocation with this request id."""
        matches = self.find_pending(request_id)
        for pending in matches:
            pending.cancel()
        return len(matches)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def close(self, grace: float = 0.0) -> None:
        """Mark closed, cancel all pending invocations and close the channel."""
        if self._closed:
            return
        self._closed = True
        for pending in list(self._pending.values()):
            pending.cancel()
        await self.channel.close()
        if grace > 0 and self._tasks:
            await asyncio.wait(list(self._tasks), timeout=grace)
        logger.info(f"Session closed: session_id={self.id}")

    def _on_channel_closed(self) -> None:
        self._closed = True
        for pending in list(self._pending.values()):
            pending.cancel()
        if self._on_close is not None:
            self._on_close(self)

    def info(self) -> Dict[str, Any]:
        return {
            "session_id": self.id,
            "created_at": self.created_at.isoformat(),
            "last_active": self.last_active.isoformat(),
            "pending": len(self._pending),
        }

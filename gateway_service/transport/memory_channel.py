"""In-process channel: each request gets a bounded sub-stream that the HTTP layer drains."""
import asyncio
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from gateway_service.core.errors import ChannelClosed
from gateway_service.core.interfaces import Channel, ResponseStream
from gateway_service.core.logging import logger


def _fire(callbacks: List[Callable[[], Any]]) -> None:
    for cb in callbacks:
        try:
            cb()
        except Exception:
            logger.exception("Close callback failed")


class MemoryStream(ResponseStream):
    def __init__(self, request_id: Any, max_buffer: int = 16):
        self.request_id = request_id
        self._max_buffer = max(1, int(max_buffer))
        self._buffer: Deque[Dict[str, Any]] = deque()
        self._cond = asyncio.Condition()
        self._finished = False
        self._closed = False
        self._callbacks: List[Callable[[], Any]] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def finished(self) -> bool:
        return self._finished

    def add_close_callback(self, callback: Callable[[], Any]) -> None:
        self._callbacks.append(callback)

    async def send(self, message: Dict[str, Any]) -> None:
        async with self._cond:
            # back-pressure: wait for the consumer to drain
            await self._cond.wait_for(lambda: self._closed or len(self._buffer) < self._max_buffer)
            if self._closed:
                raise ChannelClosed(f"stream for request {self.request_id!r} is closed")
            if self._finished:
                raise ChannelClosed(f"stream for request {self.request_id!r} is finished")
            self._buffer.append(message)
            self._cond.notify_all()

    async def finish(self) -> None:
        async with self._cond:
            self._finished = True
            self._cond.notify_all()

    async def close(self) -> None:
        async with self._cond:
            if self._closed:
                return
            self._closed = True
            self._buffer.clear()
            self._cond.notify_all()
        _fire(self._callbacks)

    async def receive(self) -> Optional[Dict[str, Any]]:
        async with self._cond:
            await self._cond.wait_for(lambda: self._buffer or self._finished or self._closed)
            if self._closed or not self._buffer:
                return None
            message = self._buffer.popleft()
            self._cond.notify_all()
            return message

    def __aiter__(self):
        return self

    async def __anext__(self) -> Dict[str, Any]:
        message = await self.receive()
        if message is None:
            raise StopAsyncIteration
        return message


class MemoryChannel(Channel):
    def __init__(self, max_buffer: int = 16):
        self.max_buffer = max_buffer
        self._streams: Dict[int, MemoryStream] = {}
        self._closed = False
        self._callbacks: List[Callable[[], Any]] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def open_streams(self) -> int:
        return len(self._streams)

    def add_close_callback(self, callback: Callable[[], Any]) -> None:
        self._callbacks.append(callback)

    def open_stream(self, request_id: Any) -> MemoryStream:
        if self._closed:
            raise ChannelClosed("channel is closed")
        stream = MemoryStream(request_id, max_buffer=self.max_buffer)
        key = id(stream)
        self._streams[key] = stream
        stream.add_close_callback(lambda: self._streams.pop(key, None))
        return stream

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        streams = list(self._streams.values())
        self._streams.clear()
        for stream in streams:
            await stream.close()
        _fire(self._callbacks)

"""Pull-based, cancellable wrapper around a tool's producer of partial results.

The producer may be an async iterator/generator or a plain sync iterator. The
cancellation flag is checked before every pull; once it is set the producer is
never advanced again and is closed, which is the producer's cancellation
signal (GeneratorExit at its current yield).
"""
import inspect
from typing import Any, AsyncIterator, Callable, Iterator, Optional, Union

Producer = Union[AsyncIterator[Any], Iterator[Any]]


class CancellationToken:
    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


def is_producer(value: Any) -> bool:
    """True for values that should be streamed rather than returned once."""
    if isinstance(value, (str, bytes, bytearray, dict, list, tuple)):
        return False
    return hasattr(value, "__anext__") or inspect.isgenerator(value)


class CancellableStream:
    def __init__(
        self,
        source: Producer,
        token: Optional[CancellationToken] = None,
        transform: Optional[Callable[[Any], Any]] = None,
    ):
        self._source = source
        self._is_async = hasattr(source, "__anext__")
        self.token = token or CancellationToken()
        self._transform = transform
        self._exhausted = False
        self.steps = 0

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self) -> None:
        self.token.cancel()

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        if self._exhausted:
            raise StopAsyncIteration
        if self.token.cancelled:
            await self.aclose()
            raise StopAsyncIteration
        try:
            if self._is_async:
                value = await self._source.__anext__()
            else:
                value = next(self._source)
        except (StopAsyncIteration, StopIteration):
            self._exhausted = True
            raise StopAsyncIteration
        self.steps += 1
        return self._transform(value) if self._transform else value

    async def aclose(self) -> None:
        if self._exhausted:
            return
        self._exhausted = True
        if self._is_async:
            closer = getattr(self._source, "aclose", None)
            if closer is not None:
                await closer()
        else:
            closer = getattr(self._source, "close", None)
            if closer is not None:
                closer()

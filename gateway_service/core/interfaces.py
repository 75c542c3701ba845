from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Type, TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from gateway_service.context.session import Session


class ResponseStream(ABC):
    """One correlated sub-stream of a channel, carrying the envelopes of a single request."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        ...

    @abstractmethod
    async def send(self, message: Dict[str, Any]) -> None:
        """Write one envelope. Suspends while the buffer is full; raises ChannelClosed once closed."""
        ...

    @abstractmethod
    async def finish(self) -> None:
        """Producer side: no more envelopes will follow. Buffered ones are still delivered."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Consumer or owner side: discard buffered envelopes and reject further writes."""
        ...

    @abstractmethod
    async def receive(self) -> Optional[Dict[str, Any]]:
        """Next envelope, or None once the stream is finished or closed."""
        ...

    @abstractmethod
    def add_close_callback(self, callback: Callable[[], Any]) -> None:
        ...


class Channel(ABC):
    """Duplex connection to one client. Owned and written only by its Session."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        ...

    @abstractmethod
    def open_stream(self, request_id: Any) -> ResponseStream:
        """Open an independent sub-stream for one request."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close every open sub-stream and fire the close callbacks once."""
        ...

    @abstractmethod
    def add_close_callback(self, callback: Callable[[], Any]) -> None:
        ...


class SessionStore(ABC):
    @abstractmethod
    async def create(self) -> "Session":
        """Create and register a session with a fresh identifier."""
        ...

    @abstractmethod
    async def get(self, session_id: str) -> Optional["Session"]:
        """Pure lookup; None when unknown."""
        ...

    @abstractmethod
    async def evict(self, session_id: str) -> bool:
        """Remove and close a session. Idempotent; returns False if it was absent."""
        ...

    @abstractmethod
    async def list_sessions(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def evict_idle(self, max_idle_sec: float) -> List[str]:
        ...

    @abstractmethod
    async def count(self) -> int:
        ...

    @abstractmethod
    async def close_all(self, grace: float = 0.0) -> int:
        """Close every session; used on shutdown."""
        ...


class Tool(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @property
    @abstractmethod
    def input_model(self) -> Type[BaseModel]:
        ...

    @abstractmethod
    def run(self, **kwargs: Any) -> Any:
        ...

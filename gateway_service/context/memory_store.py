"""Async in-memory session store implementing SessionStore"""
import uuid
from typing import Any, Callable, Dict, List, Optional

from gateway_service.context.session import Session
from gateway_service.core.interfaces import Channel, SessionStore
from gateway_service.core.logging import logger
from gateway_service.transport.memory_channel import MemoryChannel


class MemoryStore(SessionStore):
    """
    Keyed map of live sessions. Every mutation of the map happens before the
    first suspension point of an operation, so create/get/evict look atomic to
    other coroutines on the loop.
    """

    def __init__(
        self,
        channel_factory: Optional[Callable[[], Channel]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.sessions: Dict[str, Session] = {}
        self._channel_factory = channel_factory or MemoryChannel
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    async def create(self) -> Session:
        session_id = self._id_factory()
        if session_id in self.sessions:
            raise RuntimeError(f"Session id collision: {session_id}")
        session = Session(session_id, self._channel_factory(), on_close=self._forget)
        self.sessions[session_id] = session
        logger.info(f"Session initialized with ID: {session_id}")
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    async def evict(self, session_id: str) -> bool:
        session = self.sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        logger.info(f"Session evicted: session_id={session_id}")
        return True

    async def list_sessions(self) -> List[Dict[str, Any]]:
        return [s.info() for s in self.sessions.values()]

    async def count(self) -> int:
        return len(self.sessions)

    async def evict_idle(self, max_idle_sec: float) -> List[str]:
        stale = [sid for sid, s in self.sessions.items() if s.idle_seconds() >= max_idle_sec]
        for sid in stale:
            await self.evict(sid)
        if stale:
            logger.info(f"Evicted {len(stale)} idle session(s)")
        return stale

    async def close_all(self, grace: float = 0.0) -> int:
        sessions = list(self.sessions.values())
        self.sessions.clear()
        for session in sessions:
            try:
                await session.close(grace=grace)
            except Exception:
                logger.exception(f"Error closing session: session_id={session.id}")
        return len(sessions)

    def _forget(self, session: Session) -> None:
        # channel closed underneath the session
        if self.sessions.get(session.id) is session:
            del self.sessions[session.id]
            logger.info(f"Transport closed for session ID: {session.id}")

from typing import Any, Optional, Tuple

from gateway_service.context.session import Session
from gateway_service.core.errors import BadRequest, UnknownSession
from gateway_service.core.interfaces import SessionStore
from gateway_service.core.logging import logger
from gateway_service.core.types import RpcMethod


def is_initialization_request(body: Any) -> bool:
    """True only for an `initialize` message, with or without an id. Nothing else bootstraps a session."""
    if not isinstance(body, dict):
        return False
    return body.get("method") == RpcMethod.INITIALIZE


class RequestRouter:
    """Admission control: runs before any dispatch and resolves the target session."""

    def __init__(self, store: SessionStore):
        self.store = store

    async def route(self, session_id: Optional[str], body: Any) -> Tuple[Session, bool]:
        """Return (session, created)."""
        if session_id:
            session = await self.store.get(session_id)
            if session is None or session.closed:
                logger.info(f"Rejected request for unknown session: session_id={session_id}")
                raise UnknownSession(session_id)
            return session, False

        if is_initialization_request(body):
            session = await self.store.create()
            return session, True

        raise BadRequest()

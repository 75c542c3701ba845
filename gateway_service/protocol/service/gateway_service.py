from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from gateway_service.context.session import PendingInvocation, Session
from gateway_service.core.errors import (
    BadRequest,
    ChannelClosed,
    GatewayError,
    InternalError,
    InvalidRequest,
    UnknownSession,
)
from gateway_service.core.interfaces import SessionStore
from gateway_service.core.logging import logger
from gateway_service.core.tool_registry import ToolRegistry
from gateway_service.core.types import JsonRpcMessage
from gateway_service.protocol.orchestration.emitter import SseEmitter
from gateway_service.protocol.orchestration.orchestrator import MethodDispatcher
from gateway_service.protocol.orchestration.router import RequestRouter
from gateway_service.protocol.orchestration.stream import CancellableStream
from gateway_service.protocol.orchestration.tool_runner import ToolRunner


@dataclass
class Reply:
    """What the transport needs to answer one POST."""
    session: Session
    created: bool
    pending: Optional[PendingInvocation] = None
    streaming: bool = False

    @property
    def accepted(self) -> bool:
        """Notification: nothing will be written."""
        return self.pending is None


class GatewayService:
    def __init__(
        self,
        store: SessionStore,
        registry: ToolRegistry,
        server_info: Optional[Dict[str, Any]] = None,
        tool_timeout: Optional[float] = None,
        emitter: Optional[SseEmitter] = None,
    ):
        """Wire router, tool runner, method dispatcher and emitter around one session store"""
        self.store = store
        self.registry = registry
        self.router = RequestRouter(store)
        self.runner = ToolRunner(registry, timeout=tool_timeout)
        self.dispatcher = MethodDispatcher(self.runner, server_info)
        self.emitter = emitter or SseEmitter()

    @staticmethod
    def parse(body: Any) -> JsonRpcMessage:
        if isinstance(body, list):
            raise InvalidRequest("Invalid Request: batch requests are not supported")
        if not isinstance(body, dict):
            raise InvalidRequest("Invalid Request: expected a JSON object")
        try:
            return JsonRpcMessage.model_validate(body)
        except ValidationError as e:
            first = e.errors(include_url=False)[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or "body"
            raise InvalidRequest(f"Invalid Request: {field}: {first.get('msg')}")

    async def handle(self, session_id: Optional[str], body: Any) -> Reply:
        """Admit, route and dispatch one inbound message."""
        message = self.parse(body)
        session, created = await self.router.route(session_id, body)
        session.touch()

        if message.is_notification:
            await self.dispatcher.notify(session, message)
            return Reply(session, created)

        try:
            pending = session.open_invocation(message.id)
        except ChannelClosed:
            raise UnknownSession(session.id)

        try:
            outcome = await self.dispatcher.dispatch(session, message, pending)
        except GatewayError as e:
            logger.info(
                f"Request failed: session_id={session.id}, method={message.method}, code={e.code}, error={e.message}"
            )
            await self.emitter.emit_error(session, pending, e)
            return Reply(session, created, pending)
        except Exception:
            logger.exception(f"Unhandled error: session_id={session.id}, method={message.method}")
            await self.emitter.emit_error(session, pending, InternalError())
            return Reply(session, created, pending)

        if isinstance(outcome, CancellableStream):
            pending.streaming = True
            session.spawn(self.emitter.emit_stream(session, pending, outcome))
            return Reply(session, created, pending, streaming=True)

        await self.emitter.emit_single(session, pending, outcome)
        return Reply(session, created, pending)

    async def terminate(self, session_id: Optional[str]) -> None:
        if not session_id:
            raise BadRequest("Bad Request: No valid session ID provided")
        if not await self.store.evict(session_id):
            raise UnknownSession(session_id)
        logger.info(f"Closing session for ID: {session_id}")

    # --- Session Management ---

    async def list_sessions(self) -> List[Dict[str, Any]]:
        return await self.store.list_sessions()

    async def session_count(self) -> int:
        return await self.store.count()

    async def evict_idle(self, max_idle_sec: float) -> List[str]:
        return await self.store.evict_idle(max_idle_sec)

    async def shutdown(self, grace: float = 0.0) -> int:
        count = await self.store.close_all(grace=grace)
        logger.info(f"Closed {count} session(s) on shutdown")
        return count

from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import ValidationError

from gateway_service.context.session import PendingInvocation, Session
from gateway_service.core.errors import InvalidArguments, MethodNotFound
from gateway_service.core.logging import logger
from gateway_service.core.types import CallToolParams, CancelledParams, JsonRpcMessage, RpcMethod
from gateway_service.protocol.orchestration.stream import CancellableStream
from gateway_service.protocol.orchestration.tool_runner import ToolRunner

Outcome = Union[Dict[str, Any], CancellableStream]
Handler = Callable[[Session, JsonRpcMessage, PendingInvocation], Awaitable[Outcome]]


class MethodDispatcher:
    """Maps JSON-RPC methods of a routed request to their handlers."""

    def __init__(self, runner: ToolRunner, server_info: Optional[Dict[str, Any]] = None):
        self.runner = runner
        self.server_info = server_info or {}
        self._methods: Dict[str, Handler] = {
            RpcMethod.INITIALIZE: self._initialize,
            RpcMethod.PING: self._ping,
            RpcMethod.TOOLS_LIST: self._list_tools,
            RpcMethod.TOOLS_CALL: self._call_tool,
            RpcMethod.SERVER_INFO: self._server_info,
        }

    async def dispatch(self, session: Session, message: JsonRpcMessage, pending: PendingInvocation) -> Outcome:
        handler = self._methods.get(message.method)
        if handler is None:
            raise MethodNotFound(f"Method not found: {message.method}")
        logger.debug(f"Dispatch: session_id={session.id}, method={message.method}, id={message.id}")
        return await handler(session, message, pending)

    async def notify(self, session: Session, message: JsonRpcMessage) -> None:
        """Notifications never produce a response."""
        if message.method == RpcMethod.INITIALIZED:
            session.initialized = True
            logger.info(f"Client initialized: session_id={session.id}")
        elif message.method == RpcMethod.CANCELLED:
            try:
                params = CancelledParams.model_validate(message.params or {})
            except ValidationError:
                logger.warning(f"Ignoring malformed cancel notification: session_id={session.id}")
                return
            count = session.cancel_request(params.requestId)
            logger.info(
                f"Cancel requested: session_id={session.id}, request_id={params.requestId}, matched={count}"
            )
        else:
            logger.debug(f"Ignoring notification {message.method}: session_id={session.id}")

    def _server_block(self) -> Dict[str, Any]:
        return {
            "name": self.server_info.get("name", "stateful-server"),
            "version": str(self.server_info.get("version", "1.0.0")),
        }

    async def _initialize(self, session: Session, message: JsonRpcMessage, pending: PendingInvocation) -> Outcome:
        params = message.params or {}
        return {
            "protocolVersion": params.get("protocolVersion")
            or str(self.server_info.get("protocol_version", "2025-03-26")),
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": self._server_block(),
        }

    async def _ping(self, session: Session, message: JsonRpcMessage, pending: PendingInvocation) -> Outcome:
        return {}

    async def _list_tools(self, session: Session, message: JsonRpcMessage, pending: PendingInvocation) -> Outcome:
        return {"tools": self.runner.registry.list_tools()}

    async def _server_info(self, session: Session, message: JsonRpcMessage, pending: PendingInvocation) -> Outcome:
        return {
            "serverInfo": self._server_block(),
            "session": {"id": session.id, "createdAt": session.created_at.isoformat()},
            "tools": sorted(self.runner.registry.all()),
        }

    async def _call_tool(self, session: Session, message: JsonRpcMessage, pending: PendingInvocation) -> Outcome:
        try:
            params = CallToolParams.model_validate(message.params or {})
        except ValidationError as e:
            raise InvalidArguments(f"Invalid tools/call params: {e.errors(include_url=False)[0]['msg']}")
        logger.info(f"Tool call: session_id={session.id}, tool={params.name}, id={message.id}")
        return await self.runner.run(params.name, params.arguments, token=pending.token)

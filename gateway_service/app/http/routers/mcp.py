import json
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from gateway_service.core.errors import GatewayError, InternalError, ParseError
from gateway_service.core.logging import logger
from gateway_service.core.types import JSONRPC_VERSION
from gateway_service.protocol.orchestration.emitter import error_envelope
from gateway_service.protocol.service.gateway_service import Reply

DEFAULT_SESSION_HEADER = "Mcp-Session-Id"


def _error_response(error: GatewayError, request_id: Any = None, status_code: Optional[int] = None) -> JSONResponse:
    status = status_code or (error.http_status if error.http_status >= 400 else 400)
    return JSONResponse(error_envelope(request_id, error), status_code=status)


def _request_id(body: Any) -> Any:
    return body.get("id") if isinstance(body, dict) else None


async def _sse_events(request: Request, reply: Reply) -> AsyncGenerator[bytes, None]:
    emitter = request.app.state.gateway.emitter
    pending = reply.pending
    try:
        while True:
            message = await pending.stream.receive()
            if message is None:
                break
            # Check disconnect BEFORE yielding
            if await request.is_disconnected():
                logger.info(f"Client disconnected: session_id={reply.session.id}, request_id={pending.request_id}")
                break
            yield emitter.frame(message)
    finally:
        # closing the sub-stream cancels the invocation if it is still running
        await pending.stream.close()


def build_router(http_cfg: Optional[Dict[str, Any]] = None) -> APIRouter:
    http_cfg = http_cfg or {}
    path = http_cfg.get("path", "/mcp")
    session_header = http_cfg.get("session_header", DEFAULT_SESSION_HEADER)
    header_names: List[str] = [session_header, *(http_cfg.get("session_header_aliases") or [])]

    router = APIRouter(prefix=path, tags=["mcp"])

    def session_id_of(request: Request) -> Optional[str]:
        for name in header_names:
            value = request.headers.get(name)
            if value and value.strip():
                return value.strip()
        return None

    @router.post("")
    async def post_mcp(request: Request):
        logger.debug("Received POST MCP request")
        gateway = request.app.state.gateway
        session_id = session_id_of(request)
        body: Any = None
        try:
            raw = await request.body()
            try:
                body = json.loads(raw)
            except ValueError:
                raise ParseError()
            reply = await gateway.handle(session_id, body)
        except GatewayError as e:
            return _error_response(e, _request_id(body))
        except Exception:
            logger.exception("Error handling MCP request")
            return _error_response(InternalError(), status_code=500)

        headers = {name: reply.session.id for name in header_names} if reply.created else {}
        if reply.accepted:
            return Response(status_code=202, headers=headers)

        if reply.streaming:
            headers["Cache-Control"] = "no-cache"
            return StreamingResponse(_sse_events(request, reply), media_type="text/event-stream", headers=headers)

        pending = reply.pending
        try:
            message = await pending.stream.receive()
        finally:
            await pending.stream.close()
        if message is None:
            logger.error(f"No response written: session_id={reply.session.id}, request_id={pending.request_id}")
            return _error_response(InternalError(), pending.request_id, status_code=500)
        return JSONResponse(message, headers=headers)

    @router.delete("")
    async def delete_mcp(request: Request):
        gateway = request.app.state.gateway
        try:
            await gateway.terminate(session_id_of(request))
        except GatewayError as e:
            return _error_response(e)
        return Response(status_code=200)

    @router.get("")
    async def get_mcp():
        logger.debug("Received GET MCP request")
        return JSONResponse(
            {
                "jsonrpc": JSONRPC_VERSION,
                "error": {"code": -32000, "message": "Method not allowed."},
                "id": None,
            },
            status_code=405,
            headers={"Allow": "POST, DELETE"},
        )

    return router

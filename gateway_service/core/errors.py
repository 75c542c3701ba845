"""Error taxonomy for the gateway.

Every error maps to a stable JSON-RPC error code. ``http_status`` is only used
when the error is raised before a request reaches its session (routing, body
decoding); errors raised during dispatch travel through the session channel as
ordinary error envelopes.
"""
from typing import Any, Dict, Optional


class GatewayError(Exception):
    code = -32603
    http_status = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, data: Any = None):
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)

    def to_error(self) -> Dict[str, Any]:
        err: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            err["data"] = self.data
        return err


class BadRequest(GatewayError):
    code = -32000
    http_status = 400
    default_message = "Bad Request: No valid session ID provided"


class UnknownSession(BadRequest):
    default_message = "Bad Request: Session not found"

    def __init__(self, session_id: Optional[str] = None, message: Optional[str] = None):
        self.session_id = session_id
        super().__init__(message)


class ParseError(BadRequest):
    code = -32700
    default_message = "Parse error"


class InvalidRequest(BadRequest):
    code = -32600
    default_message = "Invalid Request"


class MethodNotFound(GatewayError):
    code = -32601
    http_status = 200
    default_message = "Method not found"


class UnknownTool(GatewayError):
    code = -32602
    http_status = 200

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class InvalidArguments(GatewayError):
    code = -32602
    http_status = 200
    default_message = "Invalid arguments"


class ToolExecutionError(GatewayError):
    code = -32001
    http_status = 200
    default_message = "Tool execution failed"


class InternalError(GatewayError):
    pass


class ChannelClosed(Exception):
    """Raised by a channel or response stream that no longer accepts writes."""

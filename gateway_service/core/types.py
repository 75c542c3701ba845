from enum import StrEnum
from typing import Any, Dict, Literal, Optional, TypedDict, Union

from pydantic import BaseModel, ConfigDict, Field

JSONRPC_VERSION = "2.0"

RequestId = Union[str, int]

NOTIFICATION_PREFIX = "notifications/"


class RpcMethod(StrEnum):
    INITIALIZE = "initialize"
    PING = "ping"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"
    SERVER_INFO = "server/info"
    INITIALIZED = "notifications/initialized"
    CANCELLED = "notifications/cancelled"


class Envelope(TypedDict, total=False):
    jsonrpc: str
    id: Optional[RequestId]
    result: Dict[str, Any]
    error: Dict[str, Any]


class JsonRpcMessage(BaseModel):
    """Inbound request or notification. Notifications are the `notifications/*` methods; a request may omit `id`."""
    model_config = ConfigDict(extra="allow")

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    method: str = Field(..., min_length=1)
    params: Optional[Dict[str, Any]] = None
    id: Optional[RequestId] = None

    @property
    def is_notification(self) -> bool:
        return self.method.startswith(NOTIFICATION_PREFIX)


class CallToolParams(BaseModel):
    name: str = Field(..., min_length=1)
    arguments: Dict[str, Any] = Field(default_factory=dict)


class CancelledParams(BaseModel):
    requestId: RequestId
    reason: Optional[str] = None

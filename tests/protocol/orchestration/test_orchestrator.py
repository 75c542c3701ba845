import pytest

from gateway_service.context.session import Session
from gateway_service.core.errors import InvalidArguments, MethodNotFound, UnknownTool
from gateway_service.core.tool_registry import ToolRegistry
from gateway_service.core.types import JsonRpcMessage
from gateway_service.protocol.orchestration.orchestrator import MethodDispatcher
from gateway_service.protocol.orchestration.stream import CancellableStream
from gateway_service.protocol.orchestration.tool_runner import ToolRunner
from gateway_service.transport.memory_channel import MemoryChannel

SERVER = {"name": "stateful-server", "version": "1.0.0", "protocol_version": "2025-03-26"}


@pytest.fixture
def dispatcher():
    registry = ToolRegistry(
        [
            {"name": "roll_dice", "impl": "gateway_service.tools.dice_tool.RollDiceTool", "args": {"seed": 1}},
            {"name": "stream_chat", "impl": "gateway_service.tools.chat_tool.StreamChatTool", "args": {"delay": 0}},
        ],
        enabled=["roll_dice", "stream_chat"],
    )
    return MethodDispatcher(ToolRunner(registry), SERVER)


@pytest.fixture
def session():
    return Session("sid", MemoryChannel())


def msg(method, params=None, id=1):
    body = {"jsonrpc": "2.0", "method": method, "id": id}
    if params is not None:
        body["params"] = params
    return JsonRpcMessage.model_validate(body)


async def call(dispatcher, session, message):
    pending = session.open_invocation(message.id)
    return await dispatcher.dispatch(session, message, pending)


@pytest.mark.asyncio
async def test_initialize_echoes_protocol_version(dispatcher, session):
    result = await call(dispatcher, session, msg("initialize", {"protocolVersion": "2024-11-05"}))
    assert result["protocolVersion"] == "2024-11-05"
    assert result["serverInfo"] == {"name": "stateful-server", "version": "1.0.0"}
    assert "tools" in result["capabilities"]


@pytest.mark.asyncio
async def test_initialize_defaults_protocol_version(dispatcher, session):
    result = await call(dispatcher, session, msg("initialize", {}))
    assert result["protocolVersion"] == "2025-03-26"


@pytest.mark.asyncio
async def test_ping(dispatcher, session):
    assert await call(dispatcher, session, msg("ping")) == {}


@pytest.mark.asyncio
async def test_tools_list(dispatcher, session):
    result = await call(dispatcher, session, msg("tools/list"))
    names = [t["name"] for t in result["tools"]]
    assert names == ["roll_dice", "stream_chat"]
    dice = result["tools"][0]
    assert dice["inputSchema"]["properties"]["sides"]["minimum"] == 1


@pytest.mark.asyncio
async def test_server_info(dispatcher, session):
    result = await call(dispatcher, session, msg("server/info"))
    assert result["session"]["id"] == "sid"
    assert result["tools"] == ["roll_dice", "stream_chat"]


@pytest.mark.asyncio
async def test_unknown_method(dispatcher, session):
    with pytest.raises(MethodNotFound):
        await call(dispatcher, session, msg("resources/list"))


@pytest.mark.asyncio
async def test_call_tool_single_shot(dispatcher, session):
    result = await call(dispatcher, session, msg("tools/call", {"name": "roll_dice", "arguments": {"sides": 1}}))
    assert result == {"content": [{"type": "text", "text": "1"}], "isError": False}


@pytest.mark.asyncio
async def test_call_tool_streamed_returns_stream(dispatcher, session):
    result = await call(dispatcher, session, msg("tools/call", {"name": "stream_chat", "arguments": {"prompt": "hi"}}))
    assert isinstance(result, CancellableStream)
    await result.aclose()


@pytest.mark.asyncio
async def test_call_tool_errors(dispatcher, session):
    with pytest.raises(UnknownTool):
        await call(dispatcher, session, msg("tools/call", {"name": "nope"}))
    with pytest.raises(InvalidArguments):
        await call(dispatcher, session, msg("tools/call", {"arguments": {}}))
    with pytest.raises(InvalidArguments):
        await call(dispatcher, session, msg("tools/call", {"name": "roll_dice", "arguments": {"sides": 0}}))


@pytest.mark.asyncio
async def test_initialized_notification_marks_session(dispatcher, session):
    await dispatcher.notify(session, JsonRpcMessage.model_validate({"jsonrpc": "2.0", "method": "notifications/initialized"}))
    assert session.initialized


@pytest.mark.asyncio
async def test_cancelled_notification_cancels_matching_request(dispatcher, session):
    pending = session.open_invocation(42)
    other = session.open_invocation(43)
    await dispatcher.notify(
        session,
        JsonRpcMessage.model_validate(
            {"jsonrpc": "2.0", "method": "notifications/cancelled", "params": {"requestId": 42}}
        ),
    )
    assert pending.cancelled
    assert not other.cancelled


@pytest.mark.asyncio
async def test_malformed_cancel_is_ignored(dispatcher, session):
    pending = session.open_invocation(1)
    await dispatcher.notify(
        session, JsonRpcMessage.model_validate({"jsonrpc": "2.0", "method": "notifications/cancelled", "params": {}})
    )
    assert not pending.cancelled

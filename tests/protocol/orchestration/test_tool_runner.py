import asyncio
from typing import Annotated

import pytest
from pydantic import BaseModel, Field

from gateway_service.core.errors import InvalidArguments, ToolExecutionError, UnknownTool
from gateway_service.core.tool_registry import ToolRegistry
from gateway_service.protocol.orchestration.stream import CancellableStream, CancellationToken
from gateway_service.protocol.orchestration.tool_runner import ToolRunner, normalize_result
from gateway_service.tools.base import BaseTool


class EchoTool(BaseTool):
    """Echo the text back."""

    async def run(self, text: str, times: Annotated[int, Field(ge=1)] = 1) -> str:
        """
        Args:
            text: Text to echo.
            times: Repetitions.
        """
        return text * times


class SlowTool(BaseTool):
    """Never finishes in time."""

    async def run(self) -> str:
        await asyncio.sleep(5)
        return "late"


class BrokenTool(BaseTool):
    """Always fails."""

    async def run(self) -> str:
        raise RuntimeError("upstream exploded")


class CountTool(BaseTool):
    """Stream numbers."""

    async def run(self, upto: int = 3):
        for i in range(upto):
            yield f"{i}"


@pytest.fixture
def registry():
    registry = ToolRegistry()
    for name, tool in [("echo", EchoTool()), ("slow", SlowTool()), ("broken", BrokenTool()), ("count", CountTool())]:
        tool._registry_name = name
        registry.register_tool(tool)
    return registry


def test_normalize_result_shapes():
    assert normalize_result("4") == {"content": [{"type": "text", "text": "4"}], "isError": False}
    assert normalize_result({"a": 1}) == {"content": [{"type": "text", "text": '{"a": 1}'}], "isError": False}
    passthrough = normalize_result({"content": [{"type": "text", "text": "x"}]})
    assert passthrough == {"content": [{"type": "text", "text": "x"}], "isError": False}


@pytest.mark.asyncio
async def test_single_shot_result_is_normalized(registry):
    result = await ToolRunner(registry).run("echo", {"text": "ab", "times": 2})
    assert result == {"content": [{"type": "text", "text": "abab"}], "isError": False}


@pytest.mark.asyncio
async def test_unknown_tool(registry):
    with pytest.raises(UnknownTool) as exc:
        await ToolRunner(registry).run("nope", {})
    assert exc.value.code == -32602
    assert exc.value.message == "Unknown tool: nope"


@pytest.mark.asyncio
async def test_invalid_arguments_carry_details(registry):
    runner = ToolRunner(registry)
    with pytest.raises(InvalidArguments) as exc:
        await runner.run("echo", {"text": "a", "times": 0})
    assert exc.value.code == -32602
    assert "times" in exc.value.message
    assert exc.value.data

    with pytest.raises(InvalidArguments):
        await runner.run("echo", {})
    with pytest.raises(InvalidArguments):
        await runner.run("echo", {"text": "a", "extra": True})


@pytest.mark.asyncio
async def test_timeout_maps_to_tool_execution_error(registry):
    with pytest.raises(ToolExecutionError) as exc:
        await ToolRunner(registry, timeout=0.01).run("slow")
    assert "timed out" in exc.value.message


@pytest.mark.asyncio
async def test_handler_failure_maps_to_tool_execution_error(registry):
    with pytest.raises(ToolExecutionError) as exc:
        await ToolRunner(registry).run("broken")
    assert exc.value.code == -32001
    assert exc.value.message == "upstream exploded"


@pytest.mark.asyncio
async def test_streamed_tool_returns_cancellable_stream(registry):
    token = CancellationToken()
    stream = await ToolRunner(registry).run("count", {"upto": 2}, token=token)
    assert isinstance(stream, CancellableStream)
    assert stream.token is token
    snapshots = [s async for s in stream]
    assert [s["content"][0]["text"] for s in snapshots] == ["0", "1"]


@pytest.mark.asyncio
async def test_function_handlers_can_be_registered():
    class Args(BaseModel):
        a: int
        b: int

    registry = ToolRegistry()
    registry.register_function("add", lambda a, b: a + b, Args, "Add two numbers.")
    result = await ToolRunner(registry).run("add", {"a": 2, "b": 3})
    assert result["content"][0]["text"] == "5"

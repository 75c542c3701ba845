import asyncio
import json
from datetime import timedelta

import pytest

from gateway_service.context.session import Session
from gateway_service.core.errors import MethodNotFound
from gateway_service.protocol.orchestration.emitter import SseEmitter, error_envelope, result_envelope
from gateway_service.protocol.orchestration.stream import CancellableStream
from gateway_service.protocol.orchestration.tool_runner import normalize_result
from gateway_service.transport.memory_channel import MemoryChannel


def make_session(max_buffer: int = 16) -> Session:
    return Session("sid", MemoryChannel(max_buffer=max_buffer))


async def drain(stream):
    out = []
    while True:
        msg = await stream.receive()
        if msg is None:
            return out
        out.append(msg)


def test_frame_format():
    emitter = SseEmitter()
    frame = emitter.frame(result_envelope(1, {"ok": True}))
    assert frame.startswith(b"data: ")
    assert frame.endswith(b"\n\n")
    assert json.loads(frame[len(b"data: "):].decode("utf-8")) == {"jsonrpc": "2.0", "id": 1, "result": {"ok": True}}


def test_encode_keeps_non_ascii():
    assert "東京".encode("utf-8") in SseEmitter.encode({"text": "東京"})


def test_error_envelope_shape():
    env = error_envelope(None, MethodNotFound())
    assert env == {"jsonrpc": "2.0", "error": {"code": -32601, "message": "Method not found"}, "id": None}


@pytest.mark.asyncio
async def test_emit_single_writes_one_envelope_and_releases():
    session = make_session()
    pending = session.open_invocation("req-1")
    await SseEmitter().emit_single(session, pending, {"tools": []})

    assert await drain(pending.stream) == [{"jsonrpc": "2.0", "id": "req-1", "result": {"tools": []}}]
    assert session.pending == []


@pytest.mark.asyncio
async def test_emit_error_writes_error_envelope():
    session = make_session()
    pending = session.open_invocation(3)
    await SseEmitter().emit_error(session, pending, MethodNotFound("Method not found: nope"))

    [msg] = await drain(pending.stream)
    assert msg["id"] == 3
    assert msg["error"] == {"code": -32601, "message": "Method not found: nope"}


@pytest.mark.asyncio
async def test_emit_stream_preserves_producer_order():
    session = make_session(max_buffer=2)
    pending = session.open_invocation(5)

    async def words():
        text = ""
        for w in ["a", "b", "c", "d"]:
            text += w
            yield text

    producer = CancellableStream(words(), pending.token, transform=normalize_result)
    task = asyncio.create_task(SseEmitter().emit_stream(session, pending, producer))
    messages = await drain(pending.stream)

    assert await task == 4
    assert [m["result"]["content"][0]["text"] for m in messages] == ["a", "ab", "abc", "abcd"]
    assert all(m["id"] == 5 for m in messages)
    assert session.pending == []


@pytest.mark.asyncio
async def test_close_after_second_frame_stops_producer_before_third():
    session = make_session()
    pending = session.open_invocation(1)
    stream = pending.stream
    pulled = []
    closed = []
    sent = []

    async def five():
        try:
            for i in range(5):
                pulled.append(i)
                yield str(i)
        finally:
            closed.append(True)

    original_send = stream.send

    async def send_then_close(message):
        await original_send(message)
        sent.append(message)
        if len(sent) == 2:
            await stream.close()

    stream.send = send_then_close

    producer = CancellableStream(five(), pending.token, transform=normalize_result)
    written = await SseEmitter().emit_stream(session, pending, producer)

    assert written == 2
    assert pulled == [0, 1]
    assert len(sent) == 2
    assert pending.cancelled
    assert closed == [True]
    assert session.pending == []


@pytest.mark.asyncio
async def test_consumer_leaving_mid_stream_closes_producer():
    session = make_session(max_buffer=1)
    pending = session.open_invocation(1)
    closed = []

    async def slow():
        try:
            for i in range(5):
                yield str(i)
                await asyncio.sleep(0.01)
        finally:
            closed.append(True)

    producer = CancellableStream(slow(), pending.token, transform=normalize_result)
    task = asyncio.create_task(SseEmitter().emit_stream(session, pending, producer))

    received = [await pending.stream.receive(), await pending.stream.receive()]
    await pending.stream.close()
    await asyncio.wait_for(task, timeout=1.0)

    assert [m["result"]["content"][0]["text"] for m in received] == ["0", "1"]
    assert pending.cancelled
    assert closed == [True]
    assert producer.steps < 5


@pytest.mark.asyncio
async def test_producer_failure_mid_stream_sends_error_envelope():
    session = make_session()
    pending = session.open_invocation(9)

    async def flaky():
        yield "partial"
        raise ValueError("boom")

    producer = CancellableStream(flaky(), pending.token, transform=normalize_result)
    task = asyncio.create_task(SseEmitter().emit_stream(session, pending, producer))
    messages = await drain(pending.stream)

    assert await task == 1
    assert messages[0]["result"]["content"][0]["text"] == "partial"
    assert messages[1]["error"] == {"code": -32001, "message": "boom"}
    assert messages[1]["id"] == 9


@pytest.mark.asyncio
async def test_session_close_stops_stream():
    session = make_session(max_buffer=1)
    pending = session.open_invocation(1)

    async def endless():
        while True:
            yield "x"

    producer = CancellableStream(endless(), pending.token, transform=normalize_result)
    task = asyncio.create_task(SseEmitter().emit_stream(session, pending, producer))
    await asyncio.sleep(0.01)

    await session.close()
    await asyncio.wait_for(task, timeout=1.0)
    assert pending.cancelled
    assert producer.cancelled


@pytest.mark.asyncio
async def test_streaming_keeps_session_active():
    session = make_session()
    pending = session.open_invocation(1)
    session.last_active -= timedelta(hours=1)
    stale = session.last_active

    async def two():
        yield "a"
        yield "ab"

    producer = CancellableStream(two(), pending.token, transform=normalize_result)
    await SseEmitter().emit_stream(session, pending, producer)

    assert session.last_active > stale
    assert session.idle_seconds() < 60

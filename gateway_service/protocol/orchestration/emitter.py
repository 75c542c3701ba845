import json
from typing import Any, Dict, TYPE_CHECKING

from gateway_service.core.errors import ChannelClosed, GatewayError, ToolExecutionError
from gateway_service.core.logging import logger
from gateway_service.core.types import JSONRPC_VERSION, Envelope
from gateway_service.protocol.orchestration.stream import CancellableStream

if TYPE_CHECKING:
    from gateway_service.context.session import PendingInvocation, Session


def result_envelope(request_id: Any, result: Dict[str, Any]) -> Envelope:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_envelope(request_id: Any, error: GatewayError) -> Envelope:
    return {"jsonrpc": JSONRPC_VERSION, "error": error.to_error(), "id": request_id}


class SseEmitter:
    """
    Writes envelopes for one invocation into its response stream and encodes
    them for the wire. Streamed results are written one snapshot per frame in
    producer order; the stream ends with completion, there is no end marker.
    """

    @staticmethod
    def encode(message: Dict[str, Any]) -> bytes:
        return json.dumps(message, ensure_ascii=False).encode("utf-8")

    def frame(self, message: Dict[str, Any]) -> bytes:
        return b"data: " + self.encode(message) + b"\n\n"

    async def emit_single(self, session: "Session", pending: "PendingInvocation", result: Dict[str, Any]) -> None:
        await self._write_terminal(session, pending, result_envelope(pending.request_id, result))

    async def emit_error(self, session: "Session", pending: "PendingInvocation", error: GatewayError) -> None:
        await self._write_terminal(session, pending, error_envelope(pending.request_id, error))

    async def emit_stream(
        self,
        session: "Session",
        pending: "PendingInvocation",
        producer: CancellableStream,
    ) -> int:
        """Pump partial results until exhaustion, failure or cancellation. Returns frames written."""
        stream = pending.stream
        written = 0
        try:
            async for partial in producer:
                if not await self._try_send(session, pending, result_envelope(pending.request_id, partial)):
                    logger.info(
                        f"Stream closed by peer: session_id={session.id}, "
                        f"request_id={pending.request_id}, frames={written}"
                    )
                    break
                written += 1
                session.touch()
                # consumer may have gone away while we were writing
                if stream.closed:
                    pending.cancel()
        except Exception as e:
            logger.exception(f"Streamed tool failed: session_id={session.id}, request_id={pending.request_id}")
            if not stream.closed:
                err = e if isinstance(e, GatewayError) else ToolExecutionError(str(e) or e.__class__.__name__)
                await self._try_send(session, pending, error_envelope(pending.request_id, err))
        finally:
            try:
                await producer.aclose()
            except Exception:
                logger.exception(f"Producer did not close cleanly: request_id={pending.request_id}")
            if pending.cancelled:
                logger.info(
                    f"Invocation cancelled: session_id={session.id}, request_id={pending.request_id}, frames={written}"
                )
            await self._finish(session, pending)
        return written

    async def _write_terminal(self, session: "Session", pending: "PendingInvocation", envelope: Envelope) -> None:
        await self._try_send(session, pending, envelope)
        await self._finish(session, pending)

    async def _try_send(self, session: "Session", pending: "PendingInvocation", envelope: Envelope) -> bool:
        try:
            await pending.stream.send(envelope)
            return True
        except ChannelClosed:
            pending.cancel()
            return False
        except Exception:
            # broken channel: nobody left to notify, drop the session
            logger.exception(f"Channel write failed: session_id={session.id}")
            pending.cancel()
            await session.channel.close()
            return False

    async def _finish(self, session: "Session", pending: "PendingInvocation") -> None:
        try:
            await pending.stream.finish()
        finally:
            session.release(pending)

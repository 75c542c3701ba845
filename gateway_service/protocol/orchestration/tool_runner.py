import asyncio
import inspect
import json
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError

from gateway_service.core.errors import InvalidArguments, ToolExecutionError, UnknownTool
from gateway_service.core.logging import logger
from gateway_service.core.tool_registry import ToolRegistry
from gateway_service.protocol.orchestration.stream import (
    CancellableStream,
    CancellationToken,
    is_producer,
)


def normalize_result(value: Any) -> Dict[str, Any]:
    """Coerce a handler value into the tool-result shape."""
    if isinstance(value, dict) and "content" in value:
        out = jsonable_encoder(value)
        out.setdefault("isError", False)
        return out
    if isinstance(value, str):
        text = value
    else:
        text = json.dumps(jsonable_encoder(value), ensure_ascii=False)
    return {"content": [{"type": "text", "text": text}], "isError": False}


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


class ToolRunner:
    """Validate arguments and execute tools with an optional deadline"""

    def __init__(self, registry: ToolRegistry, timeout: Optional[float] = None):
        self.registry = registry
        self.timeout = timeout or None

    def validate(self, name: str, arguments: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        descriptor = self.registry.get(name)
        if descriptor is None:
            raise UnknownTool(name)
        try:
            model = descriptor.input_model.model_validate(arguments or {})
        except ValidationError as e:
            raise InvalidArguments(
                f"Invalid arguments for tool {name}: {_format_validation_error(e)}",
                data=jsonable_encoder(e.errors(include_url=False, include_context=False)),
            )
        # keep nested models as model instances, only unpack the top level
        return {field: getattr(model, field) for field in type(model).model_fields}

    async def run(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        token: Optional[CancellationToken] = None,
    ) -> Any:
        """
        Returns a normalized tool result for single-shot handlers, or a
        CancellableStream of normalized snapshots for streamed handlers.
        """
        args = self.validate(name, arguments)
        handler = self.registry.get(name).handler

        try:
            result = handler(**args)
            if inspect.isawaitable(result):
                if self.timeout:
                    result = await asyncio.wait_for(result, timeout=self.timeout)
                else:
                    result = await result
        except asyncio.TimeoutError:
            logger.warning(f"Tool timed out: {name} after {self.timeout}s")
            raise ToolExecutionError(f"Tool '{name}' timed out after {self.timeout}s")
        except Exception as e:
            logger.exception(f"Error running tool {name}: {e}")
            raise ToolExecutionError(str(e) or e.__class__.__name__)

        if is_producer(result):
            logger.info(f"Tool {name} produced a stream")
            return CancellableStream(result, token=token, transform=normalize_result)
        return normalize_result(result)

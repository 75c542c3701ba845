from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel

from gateway_service.core.factory import load
from gateway_service.core.interfaces import Tool
from gateway_service.core.logging import logger


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    input_model: Type[BaseModel]
    handler: Callable[..., Any]

    @property
    def input_schema(self) -> Dict[str, Any]:
        return self.input_model.model_json_schema()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    @classmethod
    def from_tool(cls, tool: Tool) -> "ToolDescriptor":
        return cls(
            name=tool.name,
            description=tool.description,
            input_model=tool.input_model,
            handler=tool.run,
        )


class ToolRegistry:
    """Loads and provides available tools based on config"""

    def __init__(
        self,
        registry_cfg: Optional[List[Dict[str, Any]]] = None,
        enabled: Optional[List[str]] = None,
    ):
        self.tools: Dict[str, ToolDescriptor] = {}
        enabled = enabled or []
        for tcfg in registry_cfg or []:
            name = tcfg.get('name')
            if name not in enabled:
                continue
            impl = tcfg.get('impl', '')
            args = tcfg.get('args', {}) or {}
            try:
                tool = load(impl, **args)
                # Set the tool's name to match the registry name
                if hasattr(tool, '_registry_name'):
                    tool._registry_name = name
                self.register_tool(tool)
            except Exception:
                logger.exception(f"Skipping tool '{name}': could not load {impl!r}")
                continue

    def register(self, descriptor: ToolDescriptor) -> ToolDescriptor:
        if descriptor.name in self.tools:
            raise ValueError(f"Tool '{descriptor.name}' is already registered")
        self.tools[descriptor.name] = descriptor
        return descriptor

    def register_tool(self, tool: Tool) -> ToolDescriptor:
        return self.register(ToolDescriptor.from_tool(tool))

    def register_function(
        self,
        name: str,
        handler: Callable[..., Any],
        input_model: Type[BaseModel],
        description: str = "",
    ) -> ToolDescriptor:
        return self.register(ToolDescriptor(name, description, input_model, handler))

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self.tools.get(name)

    def all(self) -> Dict[str, ToolDescriptor]:
        return self.tools

    def list_tools(self) -> List[Dict[str, Any]]:
        return [d.to_dict() for d in self.tools.values()]

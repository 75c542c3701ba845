import inspect
import re
from abc import abstractmethod
from typing import Any, Dict, Optional, Type, get_type_hints

from pydantic import BaseModel, ConfigDict, Field, create_model

from gateway_service.core.interfaces import Tool

# =============================
# Tool Authoring Guidelines
# =============================
#
# To create a new tool:
# 1. Subclass BaseTool and implement run() with explicit, type-annotated keyword arguments.
#    run() may be a coroutine function, or an async generator function for streamed results.
# 2. Use a Google-style docstring for run() with an Args: section, e.g.:
#
#     async def run(self, sides: Annotated[int, Field(ge=1)] = 6) -> str:
#         """
#         Roll a die.
#         Args:
#             sides: Number of faces on the die.
#         """
#         ...
#
# 3. The input model (and its JSON schema) is generated from the run() signature and docstring.
#    Constraints go in Annotated[..., Field(...)]. Unknown arguments are rejected.
# 4. The class-level docstring is the tool's description.
# 5. Return a str, a dict with "content", or any JSON-serializable value. Streamed tools
#    yield full snapshots of the answer so far, not deltas.


class BaseTool(Tool):

    def __init__(self):
        self._registry_name: str | None = None
        self._input_model: Optional[Type[BaseModel]] = None

    @staticmethod
    def _extract_param_descriptions(docstring: str) -> dict:
        """
        Parse the docstring for an Args: section and return a mapping of param name to description.
        Supports Google-style docstrings.
        """
        if not docstring:
            return {}
        param_desc = {}
        args_section = re.search(r"Args?:\s*(.*?)(^\s*\w+:\s*$|\Z)", docstring, re.DOTALL | re.MULTILINE)
        if args_section:
            args_text = args_section.group(1)
            for line in args_text.splitlines():
                match = re.match(r"\s*(\w+)\s*:\s*(.*)", line)
                if match:
                    name, desc = match.groups()
                    param_desc[name] = desc.strip()
        return param_desc

    def _build_input_model(self) -> Type[BaseModel]:
        sig = inspect.signature(self.run)
        hints = get_type_hints(self.run, include_extras=True)
        param_docs = self._extract_param_descriptions(self.run.__doc__ or "")
        fields: Dict[str, Any] = {}
        for name, param in sig.parameters.items():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            annotation = hints.get(name, str)
            default = ... if param.default is inspect.Parameter.empty else param.default
            fields[name] = (annotation, Field(default, description=param_docs.get(name) or None))
        model_name = f"{self.__class__.__name__}Input"
        return create_model(model_name, __config__=ConfigDict(extra="forbid"), **fields)

    @property
    def input_model(self) -> Type[BaseModel]:
        if self._input_model is None:
            self._input_model = self._build_input_model()
        return self._input_model

    @property
    def name(self) -> str:
        # Use registry name if set, otherwise fall back to class name
        if self._registry_name:
            return self._registry_name
        return self.__class__.__name__

    @property
    def description(self) -> str:
        doc = inspect.cleandoc(self.__doc__ or "")
        return doc.split("\n\n", 1)[0].strip()

    @property
    def schema(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_model.model_json_schema(),
        }

    @abstractmethod
    def run(self, *args, **kwargs) -> Any:
        """Execute tool with validated arguments (the input model mirrors this signature)."""
        raise NotImplementedError()

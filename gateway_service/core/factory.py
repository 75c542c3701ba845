from importlib import import_module
from typing import Any, Callable, Dict, Optional, cast, TYPE_CHECKING
import inspect

from gateway_service.core.config import load_settings
from gateway_service.core.interfaces import Channel, SessionStore

if TYPE_CHECKING:
    from gateway_service.core.tool_registry import ToolRegistry
    from gateway_service.protocol.service.gateway_service import GatewayService


def load(dotted: str, **kwargs: Any) -> Any:
    """Import a dotted path and instantiate the class if callable.
    Filters kwargs to match the constructor signature (unless **kwargs is accepted)."""
    module, cls = dotted.rsplit(".", 1)
    mod = import_module(module)
    obj = getattr(mod, cls)

    if isinstance(obj, type):
        # class: inspect __init__ signature
        sig = inspect.signature(obj.__init__)
        params = list(sig.parameters.values())
        accepts_kwargs = any(p.kind == p.VAR_KEYWORD for p in params)
        if accepts_kwargs:
            return obj(**kwargs)
        # Filter only accepted params (skip 'self')
        allowed = {p.name for p in params if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY) and p.name != "self"}
        filtered = {k: v for k, v in kwargs.items() if k in allowed}
        return obj(**filtered)

    # callable or object (rare)
    return obj


class ServiceFactory:
    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config if config is not None else load_settings()
        self._store: SessionStore | None = None
        self._registry: "ToolRegistry | None" = None

    def channel_factory(self) -> Callable[[], Channel]:
        channel_cfg = self.config.get("providers", {}).get("channel", {}) or {}
        impl = channel_cfg.get("impl") or "gateway_service.transport.memory_channel.MemoryChannel"
        args = channel_cfg.get("args", {}) or {}
        return lambda: cast(Channel, load(impl, **args))

    def get_store(self) -> SessionStore:
        if not self._store:
            store_cfg = self.config.get("providers", {}).get("session_store", {}) or {}
            impl = store_cfg.get("impl") or "gateway_service.context.memory_store.MemoryStore"
            args = dict(store_cfg.get("args", {}) or {})
            args.setdefault("channel_factory", self.channel_factory())
            self._store = cast(SessionStore, load(impl, **args))
        return self._store

    def get_registry(self) -> "ToolRegistry":
        if not self._registry:
            from gateway_service.core.tool_registry import ToolRegistry

            tools_cfg = self.config.get("tools", {}) or {}
            registry_cfg = tools_cfg.get("registry", []) or []
            enabled = tools_cfg.get("enabled", []) or []
            self._registry = ToolRegistry(registry_cfg, enabled)
        return self._registry

    def get_gateway_service(self) -> "GatewayService":
        from gateway_service.protocol.service.gateway_service import GatewayService

        limits = self.config.get("limits", {}) or {}
        return GatewayService(
            store=self.get_store(),
            registry=self.get_registry(),
            server_info=self.config.get("server", {}) or {},
            tool_timeout=limits.get("tool_timeout_sec", 10),
        )

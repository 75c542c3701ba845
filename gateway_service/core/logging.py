import logging
from typing import Any, Dict, Optional

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

logger = logging.getLogger("gateway_service")


def configure_logging(cfg: Optional[Dict[str, Any]] = None) -> None:
    """Apply the `logging` config section. basicConfig is a no-op if root already has handlers."""
    cfg = cfg or {}
    level = getattr(logging, str(cfg.get("level", "INFO")).upper(), logging.INFO)
    logging.basicConfig(level=level, format=cfg.get("format", DEFAULT_FORMAT))
    logger.setLevel(level)

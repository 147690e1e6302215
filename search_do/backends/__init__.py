import logging
from typing import Any, Dict, Optional

from ..core.config import settings
from ..core.exceptions import ConfigurationError
from .base import IndexBackend
from .hyper_estraier import HyperEstraierBackend
from .memory import MemoryIndexBackend

logger = logging.getLogger(__name__)

DEFAULT_BACKEND = "hyper_estraier"

BACKENDS = {
    HyperEstraierBackend.name: HyperEstraierBackend,
    MemoryIndexBackend.name: MemoryIndexBackend,
}

CONNECTION_KEYS = ("host", "port", "user", "password", "connect_timeout", "read_timeout")


def merged_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Settings-level connection config overridden by per-model values."""
    merged = settings.backend_config()
    for key, value in (config or {}).items():
        if value is not None:
            merged[key] = value
    return merged


def node_name_for(table_name: str, config: Dict[str, Any]) -> str:
    prefix = config.get("node_prefix") or config.get("node") or settings.ENVIRONMENT
    return f"{prefix}_{table_name}"


def connect(table_name: str, config: Optional[Dict[str, Any]] = None) -> IndexBackend:
    """
    Build the index backend for a model's table.

    Args:
        table_name: Table of the searchable model, part of the node name
        config: Per-model overrides of host, port, user, password,
            node/node_prefix, backend and timeouts

    Raises:
        ConfigurationError: If the backend name is not supported
    """
    config = merged_config(config)
    backend_name = str(config.get("backend") or DEFAULT_BACKEND).lower()
    backend_class = BACKENDS.get(backend_name)
    if backend_class is None:
        raise ConfigurationError(
            f"{backend_name} backend is not supported. Available backends: {', '.join(sorted(BACKENDS))}"
        )

    node_name = node_name_for(table_name, config)
    connection = {key: config[key] for key in CONNECTION_KEYS if config.get(key) is not None}
    backend = backend_class(node_name, **connection)
    logger.info(f"Connected {backend_name} backend to node {node_name}")
    return backend


__all__ = [
    "BACKENDS",
    "HyperEstraierBackend",
    "IndexBackend",
    "MemoryIndexBackend",
    "connect",
    "merged_config",
    "node_name_for",
]

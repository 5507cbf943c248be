"""
Process-wide pool of LLM clients keyed by provider id.

Jobs running on different worker threads share one client per provider.
Invalidation only drops the pool's reference: a job already holding the old
client finishes its call with it, the next lookup builds a fresh one.
"""

import threading
from collections.abc import Callable

from loguru import logger

from llm.base import LLMClient, LLMConfig
from llm.registry import create_client
from utils.metrics import llm_client_pool_size


class ClientPool:
    """Lock-guarded map of provider id to client."""

    def __init__(self, factory: Callable[[LLMConfig], LLMClient] = create_client) -> None:
        self._factory = factory
        self._clients: dict[int, tuple[LLMConfig, LLMClient]] = {}
        self._lock = threading.Lock()

    def get_or_create(self, config: LLMConfig) -> LLMClient:
        """
        Return the pooled client for ``config.provider_id``, creating it if needed.

        A pooled client whose settings differ from ``config`` is replaced,
        so edited provider settings take effect even without an explicit
        invalidation.

        Raises:
            LLMConfigurationError: If the client cannot be created
        """
        with self._lock:
            entry = self._clients.get(config.provider_id)
            if entry is not None and entry[0] == config:
                return entry[1]
            client = self._factory(config)
            self._clients[config.provider_id] = (config, client)
            llm_client_pool_size.set(len(self._clients))
            return client

    def invalidate(self, provider_id: int) -> bool:
        """Drop the client for one provider. Returns True if one was pooled."""
        with self._lock:
            removed = self._clients.pop(provider_id, None) is not None
            llm_client_pool_size.set(len(self._clients))
        if removed:
            logger.bind(provider_id=provider_id).info("Invalidated pooled LLM client")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._clients.clear()
            llm_client_pool_size.set(0)
        logger.info("Cleared LLM client pool")

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)

    def __contains__(self, provider_id: int) -> bool:
        with self._lock:
            return provider_id in self._clients


_default_pool = ClientPool()


def get_client_pool() -> ClientPool:
    """Get the process-wide client pool."""
    return _default_pool

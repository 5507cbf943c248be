"""
Provider registry: maps a provider type tag to the client class serving it.

Client modules register themselves at import time:

    @register_provider("openai", "deepseek")
    class OpenAICompatibleClient(LLMClient):
        ...
"""

from collections.abc import Callable

from loguru import logger

from llm.base import LLMClient, LLMConfig, LLMConfigurationError

_PROVIDERS: dict[str, type[LLMClient]] = {}


def register_provider(*tags: str) -> Callable[[type[LLMClient]], type[LLMClient]]:
    """Class decorator registering an ``LLMClient`` under one or more tags."""

    def decorator(cls: type[LLMClient]) -> type[LLMClient]:
        for tag in tags:
            key = tag.strip().lower()
            if key in _PROVIDERS and _PROVIDERS[key] is not cls:
                raise ValueError(f"LLM provider '{key}' is already registered")
            _PROVIDERS[key] = cls
        return cls

    return decorator


def registered_providers() -> list[str]:
    return sorted(_PROVIDERS)


def create_client(config: LLMConfig) -> LLMClient:
    """
    Instantiate the client registered for ``config.provider_type``.

    Raises:
        LLMConfigurationError: If the provider type is unknown or the
                               settings are incomplete
    """
    key = (config.provider_type or "").strip().lower()
    cls = _PROVIDERS.get(key)
    if cls is None:
        raise LLMConfigurationError(
            f"Unknown LLM provider type '{config.provider_type}' "
            f"(registered: {', '.join(registered_providers()) or 'none'})"
        )
    if not config.base_url or not config.api_key or not config.model:
        raise LLMConfigurationError(
            f"LLM provider {config.provider_id} requires base_url, api_key and model"
        )
    logger.bind(provider_id=config.provider_id).info(
        f"Creating {cls.__name__} for provider {config.provider_id} ({config.model})"
    )
    return cls(config)

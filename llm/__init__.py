"""
LLM package for MergeGuard.

Importing the package registers every bundled provider with the registry.
"""

from llm.base import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    LLMClient,
    LLMConfig,
    LLMConfigurationError,
    LLMError,
    LLMRequestError,
    TokenUsage,
)
from llm.client_pool import ClientPool, get_client_pool
from llm.openai_compatible import OpenAICompatibleClient
from llm.registry import create_client, register_provider, registered_providers

__all__ = [
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "LLMClient",
    "LLMConfig",
    "LLMError",
    "LLMConfigurationError",
    "LLMRequestError",
    "TokenUsage",
    "ClientPool",
    "get_client_pool",
    "OpenAICompatibleClient",
    "create_client",
    "register_provider",
    "registered_providers",
]

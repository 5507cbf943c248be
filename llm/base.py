"""
LLM client abstraction.

Every provider exposes the same single operation: one chat completion with a
system and a user message, returning the assistant text plus token usage.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_SYSTEM_MESSAGE = (
    "You are an expert code reviewer. Analyze the code changes and provide "
    "structured feedback in JSON format."
)


class LLMError(Exception):
    """Base class for LLM client failures."""


class LLMConfigurationError(LLMError):
    """Provider settings are incomplete or name an unknown provider type."""


class LLMRequestError(LLMError):
    """The provider call failed or returned no usable content."""

    def __init__(self, message: str, timeout: bool = False) -> None:
        super().__init__(message)
        self.timeout = timeout


class LLMConfig(BaseModel):
    """Connection settings for one provider, keyed in the pool by ``provider_id``."""

    model_config = ConfigDict(frozen=True)

    provider_id: int
    provider_type: str = Field(default="openai", description="Registry tag")
    base_url: str
    api_key: str = Field(repr=False)
    model: str
    timeout: float = Field(default=60.0, gt=0)


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    messages: list[ChatMessage]
    temperature: float = 0.7
    max_tokens: int = 4096


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatResponse(BaseModel):
    content: str
    model: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage)
    duration_ms: int = 0


class LLMClient(ABC):
    """
    Abstract base class for chat-completion providers.

    Implementations are created through ``llm.registry`` and shared between
    jobs by ``llm.client_pool``, so they must be safe to call from several
    threads at once.
    """

    provider_type: str = "base"

    def __init__(self, config: LLMConfig) -> None:
        self.config = config

    @property
    def model(self) -> str:
        return self.config.model

    @abstractmethod
    def chat_completion(self, request: ChatRequest) -> ChatResponse:
        """
        Send one chat-completion request.

        Args:
            request: System/user messages and sampling settings

        Returns:
            ChatResponse with the assistant content and token usage

        Raises:
            LLMRequestError: If the call fails, times out or returns no content
        """
        pass

    def close(self) -> None:
        """Release network resources held by the client."""
        pass

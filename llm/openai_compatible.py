"""
OpenAI-compatible chat-completion client.

Serves OpenAI itself and every vendor exposing the same
``/chat/completions`` API (DeepSeek, local gateways).
"""

import time
import uuid

import openai
from loguru import logger
from openai import OpenAI

from llm.base import ChatRequest, ChatResponse, LLMClient, LLMConfig, LLMRequestError, TokenUsage
from llm.registry import register_provider
from utils.metrics import track_llm_request


def normalize_base_url(base_url: str) -> str:
    """
    Reduce a configured endpoint to the API root the SDK expects.

    - https://api.openai.com -> https://api.openai.com/v1
    - https://api.openai.com/v1 -> unchanged
    - https://api.openai.com/v1/chat/completions -> https://api.openai.com/v1
    """
    base = base_url.rstrip("/")
    if base.endswith("/chat/completions"):
        base = base[: -len("/chat/completions")]
    if not base.endswith("/v1") and "/v1/" not in base:
        base = f"{base}/v1"
    return base


@register_provider("openai", "deepseek", "openai_compatible")
class OpenAICompatibleClient(LLMClient):
    """
    Chat-completion client backed by the ``openai`` SDK.

    The SDK's own retry loop is disabled: retries are owned by the task queue
    so that every attempt is accounted for in the usage log.
    """

    provider_type = "openai"

    def __init__(self, config: LLMConfig) -> None:
        """
        Initialize the SDK client.

        Args:
            config: Provider settings (base URL, API key, model, timeout)
        """
        super().__init__(config)
        self.provider_type = config.provider_type
        self._client = OpenAI(
            api_key=config.api_key,
            base_url=normalize_base_url(config.base_url),
            timeout=config.timeout,
            max_retries=0,
        )

    @track_llm_request
    def chat_completion(self, request: ChatRequest) -> ChatResponse:
        request_id = str(uuid.uuid4())
        start_time = time.time()
        log = logger.bind(request_id=request_id, provider_id=self.config.provider_id)

        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                messages=[m.model_dump() for m in request.messages],
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
        except openai.APITimeoutError as e:
            latency_ms = int((time.time() - start_time) * 1000)
            log.bind(latency_ms=latency_ms, status="timeout").warning(
                f"LLM request timed out after {self.config.timeout}s"
            )
            raise LLMRequestError(f"request timed out: {e}", timeout=True) from e
        except openai.OpenAIError as e:
            latency_ms = int((time.time() - start_time) * 1000)
            log.bind(latency_ms=latency_ms, status="error").error(f"LLM request failed: {e}")
            raise LLMRequestError(str(e)) from e

        latency_ms = int((time.time() - start_time) * 1000)

        if not completion.choices or not completion.choices[0].message.content:
            log.bind(latency_ms=latency_ms, status="empty").error("LLM returned no content")
            raise LLMRequestError("no content in LLM response")

        usage = TokenUsage()
        if completion.usage is not None:
            usage = TokenUsage(
                prompt_tokens=completion.usage.prompt_tokens or 0,
                completion_tokens=completion.usage.completion_tokens or 0,
                total_tokens=completion.usage.total_tokens or 0,
            )

        log.bind(latency_ms=latency_ms, status="success").info(
            f"LLM request completed ({usage.total_tokens} tokens)"
        )
        return ChatResponse(
            content=completion.choices[0].message.content,
            model=completion.model or self.model,
            usage=usage,
            duration_ms=latency_ms,
        )

    def close(self) -> None:
        self._client.close()

"""OpenAI-compatible chat client for analysis calls.

Works with any endpoint speaking the OpenAI chat-completions protocol
(OpenAI, DeepSeek, local servers, ...) through a configurable base URL.
Each call is a single attempt: failures surface as LLMTransportError.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from openai import AsyncOpenAI, OpenAIError

from app.core.exceptions import BudgetExceededError, LLMTransportError
from app.core.logging import get_logger
from app.core.rate_limiter import get_limiter
from app.schemas.analysis import DEFAULT_OUTPUT_TOKENS, LLMConfig
from app.services.token_budget import estimate_tokens

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a professional literary analysis assistant. "
    "Return JSON exactly as the user requests, without any additional text."
)

ChunkCallback = Callable[[str, str], Awaitable[None]]
"""Receives (delta, content accumulated so far) for each streamed piece."""


class ModelClient:
    """Thin async wrapper over AsyncOpenAI with budget checks and rate limiting."""

    def __init__(self, timeout: float = 600.0, requests_per_minute: float = 60.0) -> None:
        self.timeout = timeout
        self.requests_per_minute = requests_per_minute
        self._clients: dict[tuple[str, str], AsyncOpenAI] = {}

    def _client(self, config: LLMConfig) -> AsyncOpenAI:
        key = (config.base_url, config.api_key)
        client = self._clients.get(key)
        if client is None:
            client = AsyncOpenAI(
                base_url=config.base_url,
                api_key=config.api_key or "not-set",
                timeout=self.timeout,
                max_retries=0,
            )
            self._clients[key] = client
        return client

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()

    def _check_budget(self, prompt: str, config: LLMConfig) -> int:
        prompt_tokens = estimate_tokens(prompt)
        if prompt_tokens > config.max_context_tokens:
            raise BudgetExceededError(
                f"Prompt is estimated at {prompt_tokens} tokens, above the model limit of "
                f"{config.max_context_tokens} tokens. Select fewer dimensions or use a model "
                "with a larger context.",
                context={"prompt_tokens": prompt_tokens, "max_context_tokens": config.max_context_tokens},
            )
        return prompt_tokens

    def _request(self, prompt: str, config: LLMConfig) -> dict:
        return {
            "model": config.model,
            "temperature": config.temperature,
            "max_tokens": config.max_output_tokens or DEFAULT_OUTPUT_TOKENS,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }

    async def call(self, prompt: str, config: LLMConfig) -> str:
        """Send one prompt and return the full response text.

        Raises:
            BudgetExceededError: If the prompt estimate exceeds the context window.
            LLMTransportError: If the API call fails or returns no content.
        """
        prompt_tokens = self._check_budget(prompt, config)
        limiter = get_limiter(config.base_url, self.requests_per_minute)

        await limiter.acquire()
        try:
            response = await self._client(config).chat.completions.create(**self._request(prompt, config))
        except OpenAIError as exc:
            logger.warning("llm_call_failed", model=config.model, error=str(exc))
            raise LLMTransportError(f"Model API call failed: {exc}") from exc
        finally:
            limiter.release()

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMTransportError("Model API returned an empty response")

        logger.info(
            "llm_call_completed",
            model=config.model,
            prompt_tokens=prompt_tokens,
            response_chars=len(content),
        )
        return content

    async def call_stream(
        self,
        prompt: str,
        config: LLMConfig,
        on_chunk: ChunkCallback | None = None,
    ) -> str:
        """Stream one prompt, reporting each delta to ``on_chunk``.

        Returns:
            The concatenated response text.
        """
        prompt_tokens = self._check_budget(prompt, config)
        limiter = get_limiter(config.base_url, self.requests_per_minute)
        full_content = ""

        await limiter.acquire()
        try:
            stream = await self._client(config).chat.completions.create(
                **self._request(prompt, config), stream=True
            )
            async for event in stream:
                for choice in event.choices:
                    delta = choice.delta.content
                    if not delta:
                        continue
                    full_content += delta
                    if on_chunk is not None:
                        await on_chunk(delta, full_content)
        except OpenAIError as exc:
            logger.warning("llm_stream_failed", model=config.model, error=str(exc))
            raise LLMTransportError(f"Model API streaming call failed: {exc}") from exc
        finally:
            limiter.release()

        if not full_content:
            raise LLMTransportError("Model API returned an empty response")

        logger.info(
            "llm_stream_completed",
            model=config.model,
            prompt_tokens=prompt_tokens,
            response_chars=len(full_content),
        )
        return full_content

    async def list_models(self, config: LLMConfig) -> list[str]:
        """Model ids offered by the configured endpoint, sorted."""
        try:
            page = await self._client(config).models.list()
        except OpenAIError as exc:
            raise LLMTransportError(f"Failed to list models: {exc}") from exc
        return sorted(model.id for model in page.data)

"""
OpenAI client wrapper for the EOR quote engine.

Handles:
- Chat completions in JSON mode (raw text returned for tolerant parsing)
- Per-call timeouts inside a shared stage budget
- Retry with exponential backoff for retriable failures only
- One plain-mode retry when the endpoint rejects JSON response_format
"""

import os
from typing import Any

from openai import AsyncOpenAI

from ..config import config
from ..errors import ModelInvalidResponseError, wrap_model_error
from ..logging import get_logger
from ..resilience import StageBudget, call_with_budget

logger = get_logger(__name__)


class OpenAIClient:
    """
    Async OpenAI-compatible chat client used by every generative stage.

    Configuration via environment variables:
    - OPENAI_API_KEY: Required API key
    - OPENAI_CHAT_MODEL: Chat model (default: gpt-4.1-mini)
    - OPENAI_BASE_URL: Optional base URL for compatible gateways
    """

    def __init__(
        self,
        api_key: str | None = None,
        chat_model: str | None = None,
        base_url: str | None = None,
        request_timeout: float | None = None,
        stage_budget: float | None = None,
        max_attempts: int | None = None,
    ):
        """
        Initialize the OpenAI client.

        Args:
            api_key: API key (defaults to OPENAI_API_KEY env var)
            chat_model: Model for chat completions (defaults to OPENAI_CHAT_MODEL or gpt-4.1-mini)
            base_url: Optional OpenAI-compatible base URL
            request_timeout: Per-call timeout in seconds
            stage_budget: Default stage budget in seconds when the caller passes none
            max_attempts: Attempts per call including the first
        """
        self.api_key = api_key or os.getenv('OPENAI_API_KEY')
        if not self.api_key:
            raise ValueError('OPENAI_API_KEY environment variable is required')

        self.chat_model = chat_model or os.getenv('OPENAI_CHAT_MODEL', 'gpt-4.1-mini')
        self.request_timeout = request_timeout or config.MODEL_REQUEST_TIMEOUT_SECONDS
        self.stage_budget = stage_budget or config.MODEL_STAGE_BUDGET_SECONDS
        self.max_attempts = max_attempts or config.MODEL_MAX_ATTEMPTS

        self._client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=base_url or os.getenv('OPENAI_BASE_URL') or None,
            max_retries=0,
        )

    async def _create(
        self,
        messages: list[dict[str, str]],
        json_mode: bool,
        timeout: float,
        temperature: float,
        context: dict[str, Any],
    ) -> str:
        kwargs: dict[str, Any] = {
            'model': self.chat_model,
            'messages': messages,
            'temperature': temperature,
            'timeout': timeout,
        }
        if json_mode:
            kwargs['response_format'] = {'type': 'json_object'}
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except Exception as e:
            raise wrap_model_error(e, context) from e
        return response.choices[0].message.content or ''

    async def complete_json(
        self,
        messages: list[dict[str, str]],
        json_mode: bool = True,
        budget: StageBudget | None = None,
        temperature: float = 0.0,
        context: dict[str, Any] | None = None,
    ) -> str:
        """
        Get a chat completion expected to contain a JSON document.

        The raw text is returned; callers run it through the tolerant
        candidate parser rather than trusting it to be well-formed.

        Args:
            messages: List of message dicts with 'role' and 'content'
            json_mode: Request response_format=json_object
            budget: Stage budget shared with the caller's other calls
            temperature: Sampling temperature (0.0 for deterministic)
            context: Error/log context (provider, stage)

        Returns:
            The assistant's response text
        """
        ctx = dict(context or {})
        budget = budget or StageBudget(self.stage_budget)

        async def _call(mode: bool) -> str:
            return await call_with_budget(
                lambda timeout: self._create(messages, mode, timeout, temperature, ctx),
                budget=budget,
                per_call_timeout=self.request_timeout,
                max_attempts=self.max_attempts,
                context=ctx,
            )

        try:
            return await _call(json_mode)
        except ModelInvalidResponseError as e:
            if not json_mode:
                raise
            logger.warning('model_call.json_mode_rejected', error=str(e), **ctx)
            return await _call(False)

    async def health_check(self) -> dict[str, bool | str]:
        """
        Verify API connectivity with a minimal request.

        Returns:
            Dict with 'healthy' bool and optional 'error' message
        """
        try:
            await self._client.models.retrieve(self.chat_model)
            return {'healthy': True, 'chat_model': self.chat_model}
        except Exception as e:
            return {'healthy': False, 'error': str(e)}

    async def close(self):
        """Close the client connection."""
        await self._client.close()

"""OpenAI provider using openai SDK with native async."""

import asyncio
import logging
import os
import time

import openai
from openai import AsyncOpenAI

from collab.cost import token_cost
from collab.models import Completion, CompletionParams
from collab.providers.base import AIProvider, ProviderError, is_transient_status
from config.config_loader import ModelConfig

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI provider via openai SDK. Also serves OpenAI-compatible endpoints."""

    _label = "OpenAI"

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url, max_retries=0)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def complete(self, prompt: str, params: CompletionParams) -> Completion:
        start = time.monotonic()
        messages = []
        if params.system:
            messages.append({"role": "system", "content": params.system})
        messages.append({"role": "user", "content": prompt})
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._config.model,
                    messages=messages,
                    max_tokens=params.max_tokens,
                ),
                timeout=params.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(
                self._config.name, f"Request timed out after {params.timeout_sec:.1f}s", transient=True
            ) from exc
        except openai.APIConnectionError as exc:
            raise ProviderError(self._config.name, f"Connection failed: {exc}", transient=True) from exc
        except openai.APIStatusError as exc:
            raise ProviderError(
                self._config.name,
                f"API call failed ({exc.status_code}): {exc}",
                transient=is_transient_status(exc.status_code),
                status_code=exc.status_code,
            ) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        token_count: int | None = None
        cost = 0.0
        if response.usage:
            token_count = response.usage.total_tokens
            cost = token_cost(
                response.usage.prompt_tokens,
                response.usage.completion_tokens,
                self._config.input_price_per_mtok,
                self._config.output_price_per_mtok,
            )

        logger.info(
            "%s %s: %.2fs, %s tokens, $%.4f",
            self._label,
            params.phase,
            latency,
            token_count,
            cost,
        )

        return Completion(
            text=choice.message.content,
            token_count=token_count,
            cost=cost,
            latency_sec=latency,
        )

"""Anthropic Claude provider using anthropic SDK with native async."""

import asyncio
import logging
import os
import time

import anthropic as anthropic_sdk

from collab.cost import token_cost
from collab.models import Completion, CompletionParams
from collab.providers.base import AIProvider, ProviderError, is_transient_status
from config.config_loader import ModelConfig

logger = logging.getLogger(__name__)


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key, max_retries=0)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def complete(self, prompt: str, params: CompletionParams) -> Completion:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=self._config.model,
                    max_tokens=params.max_tokens,
                    system=params.system,
                    messages=[{"role": "user", "content": prompt}],
                ),
                timeout=params.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(
                self._config.name, f"Request timed out after {params.timeout_sec:.1f}s", transient=True
            ) from exc
        except anthropic_sdk.APIConnectionError as exc:
            raise ProviderError(self._config.name, f"Connection failed: {exc}", transient=True) from exc
        except anthropic_sdk.APIStatusError as exc:
            raise ProviderError(
                self._config.name,
                f"API call failed ({exc.status_code}): {exc}",
                transient=is_transient_status(exc.status_code),
                status_code=exc.status_code,
            ) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.content:
            raise ProviderError(self._config.name, "Empty response content")

        text_blocks = [b.text for b in response.content if b.type == "text"]
        if not text_blocks:
            raise ProviderError(self._config.name, "No text blocks in response")

        token_count: int | None = None
        cost = 0.0
        if response.usage:
            token_count = response.usage.input_tokens + response.usage.output_tokens
            cost = token_cost(
                response.usage.input_tokens,
                response.usage.output_tokens,
                self._config.input_price_per_mtok,
                self._config.output_price_per_mtok,
            )

        logger.info(
            "Anthropic %s: %.2fs, %s tokens, $%.4f",
            params.phase,
            latency,
            token_count,
            cost,
        )

        return Completion(
            text="\n".join(text_blocks),
            token_count=token_count,
            cost=cost,
            latency_sec=latency,
        )

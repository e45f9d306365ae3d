"""Gemini provider using google-genai SDK with native async."""

import asyncio
import logging
import os
import time

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from collab.cost import token_cost
from collab.models import Completion, CompletionParams
from collab.providers.base import AIProvider, ProviderError, is_transient_status
from config.config_loader import ModelConfig

logger = logging.getLogger(__name__)


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def complete(self, prompt: str, params: CompletionParams) -> Completion:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._config.model,
                    contents=prompt,
                    config=genai_types.GenerateContentConfig(
                        system_instruction=params.system or None,
                        max_output_tokens=params.max_tokens,
                    ),
                ),
                timeout=params.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(
                self._config.name, f"Request timed out after {params.timeout_sec:.1f}s", transient=True
            ) from exc
        except genai_errors.APIError as exc:
            raise ProviderError(
                self._config.name,
                f"API call failed ({exc.code}): {exc}",
                transient=is_transient_status(exc.code),
                status_code=exc.code,
            ) from exc
        except ConnectionError as exc:
            raise ProviderError(self._config.name, f"Connection failed: {exc}", transient=True) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text")

        token_count: int | None = None
        cost = 0.0
        usage = response.usage_metadata
        if usage:
            token_count = usage.total_token_count
            cost = token_cost(
                usage.prompt_token_count or 0,
                usage.candidates_token_count or 0,
                self._config.input_price_per_mtok,
                self._config.output_price_per_mtok,
            )

        logger.info(
            "Gemini %s: %.2fs, %s tokens, $%.4f",
            params.phase,
            latency,
            token_count,
            cost,
        )

        return Completion(
            text=response.text,
            token_count=token_count,
            cost=cost,
            latency_sec=latency,
        )

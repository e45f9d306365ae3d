"""xAI Grok provider using openai SDK (OpenAI-compatible API)."""

from collab.providers.base import ProviderError
from collab.providers.openai_provider import OpenAIProvider
from config.config_loader import ModelConfig


class XAIProvider(OpenAIProvider):
    """xAI Grok provider via OpenAI-compatible API."""

    _label = "xAI"

    def __init__(self, config: ModelConfig) -> None:
        if not config.base_url:
            raise ProviderError(config.name, "base_url is required for xAI provider")
        super().__init__(config)

"""DeepSeek provider using openai SDK (OpenAI-compatible API)."""

from collab.providers.base import ProviderError
from collab.providers.openai_provider import OpenAIProvider
from config.config_loader import ModelConfig


class DeepSeekProvider(OpenAIProvider):
    """DeepSeek chat models via OpenAI-compatible API."""

    _label = "DeepSeek"

    def __init__(self, config: ModelConfig) -> None:
        if not config.base_url:
            raise ProviderError(config.name, "base_url is required for DeepSeek provider")
        super().__init__(config)

"""Abstract base for all AI model providers."""

from abc import ABC, abstractmethod

from collab.models import Completion, CompletionParams

# HTTP statuses worth another attempt; everything else in 4xx is fatal.
_TRANSIENT_STATUS = frozenset({408, 409, 429})


def is_transient_status(status_code: int | None) -> bool:
    """Return True for rate limits, request timeouts and any 5xx."""
    if status_code is None:
        return False
    return status_code in _TRANSIENT_STATUS or status_code >= 500


class ProviderError(Exception):
    """Raised when a provider call fails.

    transient marks errors the executor may retry (timeouts, connection
    drops, rate limits, server errors). Fatal errors end the task at once.
    """

    def __init__(
        self,
        provider_name: str,
        message: str,
        transient: bool = False,
        status_code: int | None = None,
    ) -> None:
        self.provider_name = provider_name
        self.transient = transient
        self.status_code = status_code
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def complete(self, prompt: str, params: CompletionParams) -> Completion:
        """Run one completion for the given prompt.

        Cancelling the awaiting task aborts the in-flight request.

        Args:
            prompt: The full user prompt text.
            params: System preamble, output token cap, per-call timeout and phase name.

        Returns:
            Completion with text, token count and dollar cost.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...

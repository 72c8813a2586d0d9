from __future__ import annotations

from abc import ABC, abstractmethod

from ..config import Config


class BaseDriver(ABC):
    """Abstract base for provider-specific completion calls.

    Each driver encapsulates one provider's HTTP/client call patterns and
    parameter semantics. Prompt construction and output parsing stay in
    LLMClient so every provider is shaped the same way.
    """

    def __init__(self, config: Config, debug: bool = False) -> None:
        self.config = config
        self.debug = debug
        self._request_timeout = float(config.request_timeout or 60.0)

    @abstractmethod
    def invoke(self, system: str, prompt: str, max_tokens: int = 512) -> str:
        """Return the raw text completion for ``prompt``.

        Must raise LLMError for transport, auth or quota failures and for
        responses with no usable text.
        """
        raise NotImplementedError

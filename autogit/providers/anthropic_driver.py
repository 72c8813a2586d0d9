from __future__ import annotations

import logging

import httpx

from ..config import Config
from ..exceptions import LLMError
from .base import BaseDriver

logger = logging.getLogger(__name__)


class AnthropicDriver(BaseDriver):
    """Driver handling Anthropic API calls (messages endpoint)."""

    def __init__(self, config: Config, debug: bool = False) -> None:
        super().__init__(config, debug)
        self._api_key = config.resolve_api_key()

    def invoke(self, system: str, prompt: str, max_tokens: int = 512) -> str:
        url = self.config.llm_endpoint.rstrip("/") + "/v1/messages"
        headers = {
            "x-api-key": self._api_key or "",
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }
        payload = {
            "model": self.config.model,
            "max_tokens": max_tokens,
            "system": system,
            "messages": [
                {
                    "role": "user",
                    "content": [{"type": "text", "text": prompt}],
                }
            ],
        }
        logger.debug(
            "anthropic.invoke model=%s prompt_len=%d", self.config.model, len(prompt)
        )
        try:
            response = httpx.post(
                url,
                headers=headers,
                json=payload,
                timeout=self._request_timeout,
            )
        except httpx.HTTPError as e:
            raise LLMError(
                f"Anthropic network error during messages request: {e}"
            ) from e
        status = getattr(response, "status_code", 200)
        if status and int(status) >= 400:
            raise LLMError(
                "Anthropic error {}: {}".format(
                    status, getattr(response, "text", "<no body>")
                )
            )
        try:
            data = response.json()
        except ValueError as e:
            raise LLMError(f"Anthropic returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise LLMError(
                f"Anthropic returned unexpected payload: {type(data).__name__}"
            )
        content = data.get("content") or []
        texts = []
        for chunk in content:
            if isinstance(chunk, dict) and chunk.get("type") == "text":
                texts.append(chunk.get("text", ""))
        text = "\n".join(filter(None, texts)).strip()
        if not text:
            raise LLMError("Empty response from Anthropic")
        return text

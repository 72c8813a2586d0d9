from __future__ import annotations

import logging
from typing import Any

import openai

from ..config import Config
from ..exceptions import LLMError
from .base import BaseDriver

logger = logging.getLogger(__name__)


class OpenAIDriver(BaseDriver):
    """Driver for OpenAI and OpenAI-compatible chat completion endpoints.

    Gemini, xAI and GitHub Models all expose the same chat completions
    surface, so they share this driver with a different ``base_url``.
    """

    def __init__(self, config: Config, debug: bool = False) -> None:
        super().__init__(config, debug)
        self._client: Any = openai.OpenAI(
            base_url=config.llm_endpoint,
            api_key=config.resolve_api_key(),
            timeout=self._request_timeout,
            max_retries=0,
        )

    def _uses_completion_tokens(self) -> bool:
        model = self.config.model
        return model.startswith(("gpt-5", "o1", "o3", "o4"))

    def invoke(self, system: str, prompt: str, max_tokens: int = 512) -> str:
        model = self.config.model
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        }
        token_param = (
            "max_completion_tokens" if self._uses_completion_tokens() else "max_tokens"
        )
        kwargs[token_param] = max_tokens
        logger.debug(
            "openai.invoke model=%s %s=%s prompt_len=%d",
            model,
            token_param,
            max_tokens,
            len(prompt),
        )

        try:
            resp = self._client.chat.completions.create(**kwargs)
        except openai.BadRequestError as e:
            msg = str(e)
            if token_param == "max_tokens" and "max_tokens" in msg:
                # Some servers only accept max_completion_tokens
                logger.debug("openai.invoke retrying with max_completion_tokens")
                kwargs.pop("max_tokens", None)
                kwargs["max_completion_tokens"] = max_tokens
                try:
                    resp = self._client.chat.completions.create(**kwargs)
                except openai.OpenAIError as retry_error:
                    raise LLMError(
                        f"OpenAI client error: {retry_error}"
                    ) from retry_error
            else:
                raise LLMError(f"OpenAI client error: {e}") from e
        except openai.OpenAIError as e:
            raise LLMError(f"OpenAI client error: {e}") from e

        try:
            choice0 = resp.choices[0]
        except (AttributeError, IndexError):
            raise LLMError("Missing choices in OpenAI response") from None

        # Extract content robustly: handle string or list-of-fragments
        raw_msg = getattr(choice0, "message", None)
        content = ""
        if raw_msg is not None:
            msg_content = getattr(raw_msg, "content", "")
            if isinstance(msg_content, str):
                content = msg_content
            elif isinstance(msg_content, list):
                fragments: list[str] = []
                for part in msg_content:
                    if isinstance(part, dict):
                        fragments.append(str(part.get("text") or ""))
                    else:
                        fragments.append(str(getattr(part, "text", "") or ""))
                content = "".join(fragments)
        content = content.strip()
        logger.debug(
            "openai.invoke finish_reason=%s len=%d",
            getattr(choice0, "finish_reason", None),
            len(content),
        )
        if not content:
            raise LLMError("Empty response from OpenAI-compatible endpoint")
        return content

"""Async Claude API wrapper returning parsed JSON replies."""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

import anthropic

from babycare.cloud.errors import (
    CloudNetworkError,
    CloudResponseError,
    CloudServerError,
    CloudTimeoutError,
    InvalidCredentialError,
    RateLimitedError,
)

logger = logging.getLogger(__name__)


class ClaudeClient:
    """
    Thin async wrapper over the Anthropic SDK.

    SDK retries are off so every attempt is visible to the usage limiter, and
    SDK exceptions are translated into babycare.cloud.errors types.
    """

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-5", timeout: float = 30.0):
        if not api_key:
            raise InvalidCredentialError("No Anthropic API key configured")
        self._client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model

    async def complete_json(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 2000,
    ) -> Dict[str, Any]:
        """
        Send a message to Claude and parse the reply as a JSON object.
        Runs the sync SDK call in a thread pool executor.

        Raises:
            CloudError subclass describing what went wrong.
        """
        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(
            None,
            lambda: self._complete_sync(user_prompt, system_prompt, max_tokens),
        )
        return parse_json_reply(text)

    def _complete_sync(
        self,
        user_prompt: str,
        system_prompt: Optional[str],
        max_tokens: int,
    ) -> str:
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            response = self._client.messages.create(**kwargs)
        except anthropic.AuthenticationError as exc:
            raise InvalidCredentialError(str(exc)) from exc
        except anthropic.RateLimitError as exc:
            raise RateLimitedError(str(exc)) from exc
        except anthropic.APITimeoutError as exc:
            raise CloudTimeoutError(str(exc)) from exc
        except anthropic.APIConnectionError as exc:
            raise CloudNetworkError(str(exc)) from exc
        except anthropic.APIStatusError as exc:
            if exc.status_code >= 500:
                raise CloudServerError(str(exc), status_code=exc.status_code) from exc
            raise CloudResponseError(f"HTTP {exc.status_code}: {exc}") from exc
        except anthropic.APIError as exc:
            raise CloudResponseError(str(exc)) from exc

        if not response.content:
            raise CloudResponseError("Empty reply from Claude")
        return response.content[0].text


def parse_json_reply(text: str) -> Dict[str, Any]:
    """Parse a JSON object reply, tolerating a ```json fence around it."""
    body = text.strip()
    if body.startswith("```"):
        body = body.split("\n", 1)[1] if "\n" in body else ""
        body = body.rsplit("```", 1)[0]
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError as exc:
        logger.debug("Unparseable reply: %.200s", text)
        raise CloudResponseError(f"Reply is not JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise CloudResponseError("Reply is not a JSON object")
    return parsed

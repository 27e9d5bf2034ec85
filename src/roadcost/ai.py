"""Thin wrapper around the OpenAI Responses API shared by the estimator and narrative writer."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional

from openai import APIConnectionError, APITimeoutError, InternalServerError, OpenAI, RateLimitError

from .errors import TransientSourceError
from .retry import CircuitBreaker, RetryPolicy, execute_with_retry

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass
class AIClientConfig:
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    enabled: bool = True


def extract_response_text(response: object) -> Optional[str]:
    text: Optional[str] = None
    if hasattr(response, "output_text"):
        text = getattr(response, "output_text")
    elif hasattr(response, "choices"):
        choices = getattr(response, "choices")
        if choices:
            choice = choices[0]
            if isinstance(choice, dict):
                text = choice.get("message", {}).get("content")
            else:
                message = getattr(choice, "message", None)
                if message and isinstance(message, dict):
                    text = message.get("content")
                elif message and hasattr(message, "content"):
                    text = message.content
    if isinstance(text, list):
        # Some models return a list of content parts
        text = "\n".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in text)
    return text.strip() if text else None


def parse_json_reply(text: Optional[str]) -> Optional[dict]:
    """Return the first JSON object embedded in ``text``, or None."""
    if not text:
        return None
    match = _JSON_OBJECT.search(text)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _retry_after(exc: Exception) -> Optional[float]:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


class ModelClient:
    """Sends a system/user prompt pair and returns the reply text."""

    def __init__(self, config: AIClientConfig, policy: Optional[RetryPolicy] = None, client: object = None) -> None:
        self.config = config
        self.policy = policy or RetryPolicy()
        self._breaker = CircuitBreaker(self.policy.circuit_breaker_failures)
        self._client = client

    @property
    def available(self) -> bool:
        return self.config.enabled and (self._client is not None or bool(self.config.api_key))

    def _get_client(self) -> object:
        if self._client is None:
            self._client = OpenAI(api_key=self.config.api_key)
        return self._client

    def complete(self, system_prompt: str, user_prompt: str, description: str = "model call") -> Optional[str]:
        if not self.available:
            LOGGER.debug("AI disabled or API key unavailable; skipping %s", description)
            return None
        client = self._get_client()

        def _call(timeout: float) -> object:
            try:
                return client.responses.create(
                    model=self.config.model,
                    input=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    timeout=timeout,
                )
            except (RateLimitError, APITimeoutError, APIConnectionError, InternalServerError) as exc:
                raise TransientSourceError(str(exc), retry_after=_retry_after(exc)) from exc

        response = execute_with_retry(
            _call,
            policy=self.policy,
            description=description,
            logger=LOGGER,
            breaker=self._breaker,
        )
        return extract_response_text(response)


__all__ = ["AIClientConfig", "ModelClient", "extract_response_text", "parse_json_reply", "DEFAULT_MODEL"]

"""OpenAI integration behind a minimal text-completion interface."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

from openai import APIError, OpenAI

from .config import get_config
from .errors import AIConfigurationError, AIServiceError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a world-class child development expert and parenting coach with 20+ years of experience. "
    "You provide evidence-based, practical, and personalized parenting advice that helps families thrive."
)
JSON_PROMPT_SUFFIX = "\nReturn ONLY valid JSON that matches the schema. Do not wrap it in markdown fences."


class CompletionClient(Protocol):
    def generate(
        self,
        prompt: str,
        *,
        system_prompt: str = SYSTEM_PROMPT,
        json_schema: Optional[Dict[str, Any]] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> str:
        ...


def _content_text(raw_content: Any) -> str:
    if isinstance(raw_content, str):
        return raw_content
    chunks: List[str] = []
    for part in raw_content or []:
        text = getattr(part, "text", None)
        if text is None and isinstance(part, dict):
            text = part.get("text")
        if text:
            chunks.append(text)
    return "".join(chunks)


class OpenAICompletionClient:
    """Chat-completions client. The SDK client is created on first use."""

    def __init__(self, api_key: Optional[str], model: str) -> None:
        self.api_key = api_key
        self.model = model
        self._client: Optional[OpenAI] = None

    def _get_client(self) -> OpenAI:
        if not self.api_key:
            raise AIConfigurationError()
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    def generate(
        self,
        prompt: str,
        *,
        system_prompt: str = SYSTEM_PROMPT,
        json_schema: Optional[Dict[str, Any]] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> str:
        client = self._get_client()
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt + (JSON_PROMPT_SUFFIX if json_schema else "")},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_schema:
            request["response_format"] = {"type": "json_schema", "json_schema": json_schema}
        try:
            response = client.chat.completions.create(**request)
        except APIError as exc:
            logger.exception("OpenAI chat API failed", extra={"model": self.model})
            raise AIServiceError() from exc

        try:
            raw_content = response.choices[0].message.content
        except (AttributeError, IndexError, KeyError) as exc:
            logger.exception("Unexpected OpenAI response format")
            raise AIServiceError() from exc

        content = _content_text(raw_content).strip()
        if not content:
            logger.error("OpenAI returned an empty completion", extra={"model": self.model})
            raise AIServiceError()
        return content


def get_completion_client() -> CompletionClient:
    config = get_config()
    return OpenAICompletionClient(config.openai_api_key, config.openai_model)

"""
Content Agent

Opaque text generation used by the design-plan and dev-build runners.
Backed by the Anthropic or OpenAI async SDK, selected by configuration.
"""

import re
from typing import Any, Optional

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from structlog import get_logger

from ..config import PipelineConfig, get_config
from ..errors import ConfigurationError

logger = get_logger()

_FENCED_HTML = re.compile(r"```html\s*([\s\S]*?)```", re.IGNORECASE)
_FENCED_ANY = re.compile(r"```\s*([\s\S]*?)```")
_HTML_START = re.compile(r"^(<!doctype html>|<html)", re.IGNORECASE)


def extract_html(text: Optional[str]) -> str:
    """
    Pull an HTML document out of model output.

    Accepts fenced (```html ... ```) or bare output. Returns an empty string
    unless the document starts with ``<!doctype html>`` or ``<html``.
    """
    t = (text or "").strip()
    fenced = _FENCED_HTML.search(t) or _FENCED_ANY.search(t)
    html = fenced.group(1).strip() if fenced else t
    if not _HTML_START.match(html):
        return ""
    return html


class ContentAgent:
    """
    Text generation over a configured LLM provider.

    Args:
        settings: Optional configuration (defaults to the cached config)
        client: Optional pre-built provider client (AsyncAnthropic or AsyncOpenAI)
        temperature: Sampling temperature
    """

    def __init__(
        self,
        settings: Optional[PipelineConfig] = None,
        client: Any = None,
        temperature: float = 0.5,
    ):
        self.settings = settings or get_config()
        self.provider = self.settings.content_llm_provider
        self.temperature = temperature
        self._client = client

    def _ensure_client(self):
        if self._client is not None:
            return self._client

        if self.provider == "anthropic":
            if not self.settings.anthropic_api_key:
                raise ConfigurationError("Anthropic API key not configured: ANTHROPIC_API_KEY")
            self._client = AsyncAnthropic(api_key=self.settings.anthropic_api_key)
        elif self.provider == "openai":
            if not self.settings.openai_api_key:
                raise ConfigurationError("OpenAI API key not configured: OPENAI_API_KEY")
            self._client = AsyncOpenAI(api_key=self.settings.openai_api_key)
        else:
            raise ConfigurationError(f"Unsupported LLM provider: {self.provider}")
        return self._client

    @property
    def model(self) -> str:
        if self.provider == "anthropic":
            return self.settings.anthropic_model
        return self.settings.openai_model

    async def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        """
        Generate text for ``prompt``.

        Returns:
            The model's text output, stripped

        Raises:
            ConfigurationError: If the provider key is missing
        """
        client = self._ensure_client()
        max_tokens = max_tokens or self.settings.content_max_tokens
        messages = [{"role": "user", "content": prompt}]

        if self.provider == "anthropic":
            response = await client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=self.temperature,
                messages=messages,
            )
            text = response.content[0].text
        else:  # openai
            response = await client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=self.temperature,
                messages=messages,
            )
            text = response.choices[0].message.content

        logger.info("content_generated", provider=self.provider, model=self.model, chars=len(text or ""))
        return (text or "").strip()

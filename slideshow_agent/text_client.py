from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Optional

import requests
from openai import APIError, OpenAI

from .config import TextClientConfig
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant that writes narration for short illustrated videos."


@dataclass
class GenerationOptions:
    """Per-call overrides for a text generation request."""

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None


class BaseTextClient:
    """Single capability shared by every text backend: prompt in, text out."""

    def __init__(self, config: TextClientConfig):
        self.config = config

    def generate(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        options = options or GenerationOptions()
        for attempt in range(1, self.config.max_retries + 1):
            try:
                text = self._generate(prompt.strip(), options)
                logger.debug("%s generated %s characters", type(self).__name__, len(text))
                return text
            except (APIError, requests.RequestException) as exc:
                logger.warning("Text generation attempt %s failed: %s", attempt, exc)
                if attempt >= self.config.max_retries:
                    raise
                time.sleep(self.config.retry_delay)
        raise RuntimeError("Unreachable text generation retry loop")

    def _temperature(self, options: GenerationOptions) -> float:
        return self.config.temperature if options.temperature is None else options.temperature

    def _generate(self, prompt: str, options: GenerationOptions) -> str:
        raise NotImplementedError


class OpenAITextClient(BaseTextClient):
    """Generate text through an OpenAI-compatible Responses API."""

    def __init__(self, config: TextClientConfig, client: Optional[OpenAI] = None):
        super().__init__(config)
        if client is not None and config.api_base:
            logger.warning("Ignoring provided OpenAI client because custom api_base was supplied.")
            client = None
        kwargs = {}
        if config.api_base:
            kwargs["base_url"] = config.api_base
        if config.api_key_env:
            api_key = os.getenv(config.api_key_env)
            if api_key:
                kwargs["api_key"] = api_key
        self.client = client or OpenAI(**kwargs)

    def _generate(self, prompt: str, options: GenerationOptions) -> str:
        request = {
            "model": self.config.model,
            "input": [
                {"role": "system", "content": options.system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._temperature(options),
        }
        if options.max_output_tokens:
            request["max_output_tokens"] = options.max_output_tokens
        response = self.client.responses.create(**request)
        return response.output_text.strip()


class DeepSeekTextClient(BaseTextClient):
    """Generate text via the DeepSeek chat completions REST API."""

    def __init__(self, config: TextClientConfig):
        super().__init__(config)
        key_env = config.api_key_env or "DEEPSEEK_API_KEY"
        self.api_key = os.getenv(key_env)
        if not self.api_key:
            raise ConfigurationError(f"DeepSeek API key not found. Please set environment variable '{key_env}'.")
        self.base_url = (config.api_base or "https://api.deepseek.com").rstrip("/")

    def _generate(self, prompt: str, options: GenerationOptions) -> str:
        url = f"{self.base_url}/v1/chat/completions"
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        payload = {
            "model": self.config.model or "deepseek-chat",
            "messages": [
                {"role": "system", "content": options.system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._temperature(options),
        }
        if options.max_output_tokens:
            payload["max_tokens"] = options.max_output_tokens
        response = requests.post(url, headers=headers, json=payload, timeout=60)
        if response.status_code >= 400:
            raise requests.HTTPError(
                f"DeepSeek request failed (HTTP {response.status_code}): {response.text}", response=response
            )
        data = response.json()
        return data["choices"][0]["message"]["content"].strip()


def build_text_client(config: TextClientConfig, client: Optional[OpenAI] = None) -> BaseTextClient:
    provider = (config.provider or "openai").lower()
    if provider == "openai":
        return OpenAITextClient(config=config, client=client)
    if provider == "deepseek":
        return DeepSeekTextClient(config=config)
    raise ConfigurationError(f"Unsupported text provider: {config.provider}")

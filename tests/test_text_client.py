from types import SimpleNamespace

import pytest
import requests

from slideshow_agent import text_client
from slideshow_agent.config import TextClientConfig
from slideshow_agent.errors import ConfigurationError
from slideshow_agent.text_client import (
    DeepSeekTextClient,
    GenerationOptions,
    OpenAITextClient,
    build_text_client,
)


class FakeResponses:
    def __init__(self, text):
        self.text = text
        self.requests = []

    def create(self, **request):
        self.requests.append(request)
        return SimpleNamespace(output_text=self.text)


def _deepseek_config(**overrides):
    values = dict(provider="deepseek", model="deepseek-chat", api_key_env="DEEPSEEK_API_KEY", retry_delay=0)
    values.update(overrides)
    return TextClientConfig(**values)


def _json_response(content, status_code=200):
    payload = {"choices": [{"message": {"content": content}}]}
    return SimpleNamespace(status_code=status_code, text=str(payload), json=lambda: payload)


def test_openai_client_sends_system_and_user_messages():
    responses = FakeResponses("  A calm narration.  ")
    client = build_text_client(TextClientConfig(), client=SimpleNamespace(responses=responses))

    text = client.generate("  Describe a sunrise  ", GenerationOptions(system_prompt="Be brief.", max_output_tokens=50))

    assert isinstance(client, OpenAITextClient)
    assert text == "A calm narration."
    [request] = responses.requests
    assert request["model"] == "gpt-4o-mini"
    assert request["temperature"] == 0.7
    assert request["max_output_tokens"] == 50
    assert request["input"] == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "Describe a sunrise"},
    ]


def test_options_override_configured_temperature():
    responses = FakeResponses("ok")
    client = OpenAITextClient(TextClientConfig(), client=SimpleNamespace(responses=responses))

    client.generate("prompt", GenerationOptions(temperature=0.1))

    assert responses.requests[0]["temperature"] == 0.1
    assert "max_output_tokens" not in responses.requests[0]


def test_deepseek_client_posts_chat_completion(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "secret")
    seen = {}

    def fake_post(url, headers, json, timeout):
        seen.update(url=url, headers=headers, json=json, timeout=timeout)
        return _json_response(" Hello there. ")

    monkeypatch.setattr(text_client.requests, "post", fake_post)
    client = build_text_client(_deepseek_config(api_base="https://example.test/"))

    assert isinstance(client, DeepSeekTextClient)
    assert client.generate("Say hello") == "Hello there."
    assert seen["url"] == "https://example.test/v1/chat/completions"
    assert seen["headers"]["Authorization"] == "Bearer secret"
    assert seen["json"]["messages"][1] == {"role": "user", "content": "Say hello"}


def test_deepseek_retries_transient_failures(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "secret")
    outcomes = [requests.ConnectionError("reset"), _json_response("", status_code=503), _json_response("Third time")]

    def fake_post(url, headers, json, timeout):
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(text_client.requests, "post", fake_post)

    assert DeepSeekTextClient(_deepseek_config()).generate("prompt") == "Third time"
    assert outcomes == []


def test_deepseek_gives_up_after_max_retries(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "secret")
    attempts = []

    def fake_post(url, headers, json, timeout):
        attempts.append(url)
        return _json_response("", status_code=500)

    monkeypatch.setattr(text_client.requests, "post", fake_post)

    with pytest.raises(requests.HTTPError, match="HTTP 500"):
        DeepSeekTextClient(_deepseek_config(max_retries=2)).generate("prompt")
    assert len(attempts) == 2


def test_deepseek_requires_api_key(monkeypatch):
    monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)

    with pytest.raises(ConfigurationError, match="DEEPSEEK_API_KEY"):
        DeepSeekTextClient(_deepseek_config())


def test_unknown_provider_is_rejected():
    with pytest.raises(ConfigurationError, match="Unsupported text provider"):
        build_text_client(TextClientConfig(provider="carrier-pigeon"))

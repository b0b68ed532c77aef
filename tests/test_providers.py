"""
Tests for the LLM layer:
- vendor providers: request envelope and reply extraction, no network
- factory: selection, credentials, status reporting
- adapter: every failure normalized to {"allocations": [], "errors": [...]}
"""

import json
from types import SimpleNamespace

import pytest
import requests

from allocation.adapter import ProviderAdapter, create_adapter, run_connection_check
from config.settings import Config
from conftest import FakeProvider, llm_reply
from llm.claude_provider import ClaudeProvider
from llm.factory import (
    available_providers,
    create_provider,
    provider_status,
    resolve_provider_name,
    validate_config,
)
from llm.gemini_provider import GeminiProvider
from llm.openai_provider import OpenAIProvider
from llm.provider import LLMConfigError, LLMError


# ──────────────────────────────────────────────
# Fakes for vendor clients
# ──────────────────────────────────────────────

class FakeHTTPResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else json.dumps(body)

    def json(self):
        if self._body is None:
            raise ValueError("No JSON")
        return self._body


class FakeSession:
    def __init__(self, response=None, exc=None):
        self._response = response
        self._exc = exc
        self.requests = []

    def post(self, url, params=None, json=None, timeout=None):
        self.requests.append({"url": url, "params": params, "json": json, "timeout": timeout})
        if self._exc:
            raise self._exc
        return self._response


def _gemini_body(text):
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}}],
        "usageMetadata": {"promptTokenCount": 120, "candidatesTokenCount": 40},
    }


class FakeCompletions:
    def __init__(self, response=None, exc=None):
        self._response = response
        self._exc = exc
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self._exc:
            raise self._exc
        return self._response


# ──────────────────────────────────────────────
# Gemini
# ──────────────────────────────────────────────

class TestGeminiProvider:
    def _provider(self, session, **kwargs):
        provider = GeminiProvider(api_key="g-key", model="gemini-1.5-flash", timeout=12, **kwargs)
        provider._session = session
        return provider

    def test_requires_api_key(self):
        with pytest.raises(LLMConfigError):
            GeminiProvider(api_key="")

    def test_endpoint(self):
        provider = GeminiProvider(api_key="k", model="gemini-pro",
                                  base_url="https://proxy.example.com/", api_version="v1")
        assert provider.endpoint == "https://proxy.example.com/v1/models/gemini-pro:generateContent"

    def test_request_envelope(self):
        session = FakeSession(FakeHTTPResponse(body=_gemini_body('{"allocations": []}')))
        provider = self._provider(session)

        provider.complete("system text", "user text", temperature=0.2, max_tokens=512)

        sent = session.requests[0]
        assert sent["url"].endswith("/v1beta/models/gemini-1.5-flash:generateContent")
        assert sent["params"] == {"key": "g-key"}
        assert sent["timeout"] == 12
        payload = sent["json"]
        assert payload["contents"][0]["parts"] == [{"text": "system text"}, {"text": "user text"}]
        assert payload["generationConfig"] == {
            "temperature": 0.2, "topK": 40, "topP": 0.95, "maxOutputTokens": 512,
        }
        assert len(payload["safetySettings"]) == 4
        assert all(s["threshold"] == "BLOCK_MEDIUM_AND_ABOVE" for s in payload["safetySettings"])

    def test_reply_text_and_usage(self):
        session = FakeSession(FakeHTTPResponse(body=_gemini_body("hello")))
        response = self._provider(session).complete("s", "u")
        assert response.text == "hello"
        assert response.input_tokens == 120
        assert response.output_tokens == 40
        assert response.model == "gemini-1.5-flash"

    def test_http_error(self):
        session = FakeSession(FakeHTTPResponse(status_code=429, body={"error": "quota"}))
        with pytest.raises(LLMError, match="HTTP 429"):
            self._provider(session).complete("s", "u")

    def test_network_error(self):
        session = FakeSession(exc=requests.ConnectionError("refused"))
        with pytest.raises(LLMError, match="Gemini API request failed"):
            self._provider(session).complete("s", "u")

    def test_missing_candidates(self):
        session = FakeSession(FakeHTTPResponse(body={"promptFeedback": {"blockReason": "SAFETY"}}))
        with pytest.raises(LLMError, match="Invalid response structure from Gemini"):
            self._provider(session).complete("s", "u")

    def test_non_json_body(self):
        session = FakeSession(FakeHTTPResponse(body=None, text="<html>"))
        with pytest.raises(LLMError, match="Invalid response structure"):
            self._provider(session).complete("s", "u")

    def test_name(self):
        assert GeminiProvider(api_key="k", model="gemini-pro").name() == "gemini/gemini-pro"


# ──────────────────────────────────────────────
# OpenAI / Anthropic (SDK clients replaced)
# ──────────────────────────────────────────────

class TestOpenAIProvider:
    def _provider(self, completions):
        provider = OpenAIProvider(api_key="o-key", model="gpt-4")
        provider._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
        return provider

    def _response(self, content):
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
            usage=SimpleNamespace(prompt_tokens=100, completion_tokens=30),
        )

    def test_requires_api_key(self):
        with pytest.raises(LLMConfigError):
            OpenAIProvider(api_key="")

    def test_json_mode_and_messages(self):
        completions = FakeCompletions(self._response('{"allocations": []}'))
        response = self._provider(completions).complete(
            "sys", "usr", temperature=0.1, max_tokens=99, json_output=True,
        )

        assert completions.kwargs["response_format"] == {"type": "json_object"}
        assert completions.kwargs["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "usr"},
        ]
        assert completions.kwargs["max_tokens"] == 99
        assert response.text == '{"allocations": []}'
        assert response.input_tokens == 100

    def test_plain_mode_has_no_response_format(self):
        completions = FakeCompletions(self._response("hi"))
        self._provider(completions).complete("sys", "usr")
        assert "response_format" not in completions.kwargs

    def test_sdk_error_wrapped(self):
        completions = FakeCompletions(exc=RuntimeError("401 Unauthorized"))
        with pytest.raises(LLMError, match="OpenAI API request failed: 401"):
            self._provider(completions).complete("s", "u")

    def test_empty_choices(self):
        completions = FakeCompletions(SimpleNamespace(choices=[], usage=None))
        with pytest.raises(LLMError, match="Invalid response structure from OpenAI"):
            self._provider(completions).complete("s", "u")


class TestClaudeProvider:
    def _provider(self, messages):
        provider = ClaudeProvider(api_key="a-key", model="claude-3-sonnet-20240229")
        provider._client = SimpleNamespace(messages=messages)
        return provider

    def test_requires_api_key(self):
        with pytest.raises(LLMConfigError):
            ClaudeProvider(api_key="")

    def test_system_prompt_separate(self):
        messages = FakeCompletions(SimpleNamespace(
            content=[SimpleNamespace(text="reply")],
            usage=SimpleNamespace(input_tokens=7, output_tokens=3),
        ))
        response = self._provider(messages).complete("sys", "usr", json_output=True)

        assert messages.kwargs["system"] == "sys"
        assert messages.kwargs["messages"] == [{"role": "user", "content": "usr"}]
        assert response.text == "reply"
        assert response.output_tokens == 3

    def test_empty_content(self):
        messages = FakeCompletions(SimpleNamespace(content=[], usage=None))
        with pytest.raises(LLMError, match="Invalid response structure from Anthropic"):
            self._provider(messages).complete("s", "u")

    def test_name(self):
        assert ClaudeProvider(api_key="k", model="claude-x").name() == "anthropic/claude-x"


# ──────────────────────────────────────────────
# Factory
# ──────────────────────────────────────────────

class TestFactory:
    def test_available_providers(self):
        assert set(available_providers()) == {"gemini", "openai", "anthropic"}

    def test_default_provider(self, test_config):
        assert isinstance(create_provider(test_config), GeminiProvider)

    def test_explicit_provider_is_case_insensitive(self, test_config):
        assert resolve_provider_name(test_config, " Gemini ") == "gemini"

    def test_unknown_provider(self, test_config):
        with pytest.raises(LLMConfigError, match="Unsupported LLM provider: 'mistral'"):
            create_provider(test_config, "mistral")

    def test_unknown_default_provider(self):
        with pytest.raises(LLMConfigError, match="Unsupported"):
            create_provider(Config(llm_default_provider="bard"))

    def test_missing_credentials(self, test_config):
        with pytest.raises(LLMConfigError, match="OPENAI_API_KEY"):
            create_provider(test_config, "openai")

    def test_openai_and_anthropic(self):
        config = Config(openai_api_key="o", anthropic_api_key="a")
        assert isinstance(create_provider(config, "openai"), OpenAIProvider)
        assert isinstance(create_provider(config, "anthropic"), ClaudeProvider)

    def test_validate_config(self):
        assert validate_config("openai", {"api_key": "x"}) is True
        assert validate_config("openai", {"api_key": ""}) is False
        assert validate_config("gemini", {}) is False

    def test_validate_config_unknown(self):
        with pytest.raises(LLMConfigError):
            validate_config("mistral", {"api_key": "x"})

    def test_provider_status(self):
        config = Config(
            llm_default_provider="openai",
            gemini_api_key="",
            openai_api_key="o-key",
            anthropic_api_key="",
            openai_base_url="https://openai.internal.example.com/v1",
            gemini_base_url="https://generativelanguage.googleapis.com",
            anthropic_base_url="https://api.anthropic.com",
            openai_model="gpt-4o",
        )
        status = provider_status(config)

        assert status["openai"]["configured"] is True
        assert status["openai"]["has_custom_endpoint"] is True
        assert status["openai"]["default"] is True
        assert status["openai"]["model"] == "gpt-4o"
        assert status["gemini"]["configured"] is False
        assert status["gemini"]["has_custom_endpoint"] is False
        assert status["anthropic"]["default"] is False

    def test_provider_settings_unknown(self, test_config):
        assert test_config.provider_settings("mistral") == {}


# ──────────────────────────────────────────────
# Adapter
# ──────────────────────────────────────────────

ALLOCATION = {"student_id": 1, "supervisor_id": 2, "project_id": 3, "match_score": 80, "reasoning": "fit"}


class TestProviderAdapter:
    def _generate(self, provider):
        return ProviderAdapter(provider, temperature=0.25, max_tokens=777).generate_recommendations(
            [{"id": 1}], [{"id": 3, "student_id": 1}], [{"id": 2}],
        )

    def test_success(self):
        provider = FakeProvider([llm_reply([ALLOCATION], recommendations=["ok"])])
        result = self._generate(provider)

        assert result["errors"] == []
        assert result["allocations"] == [ALLOCATION]
        assert result["recommendations"] == ["ok"]
        call = provider.calls[0]
        assert call["json_output"] is True
        assert call["temperature"] == 0.25
        assert call["max_tokens"] == 777
        assert "SUPERVISORS DATA:" in call["user_prompt"]

    def test_fenced_reply(self):
        provider = FakeProvider(["```json\n" + llm_reply([ALLOCATION]) + "\n```"])
        assert self._generate(provider)["allocations"] == [ALLOCATION]

    def test_malformed_json(self):
        result = self._generate(FakeProvider(["not json at all"]))
        assert result == {"allocations": [], "errors": ["Invalid JSON response from LLM"]}

    def test_wrong_shape(self):
        reply = json.dumps({"allocations": [{"student_id": 1}]})
        result = self._generate(FakeProvider([reply]))
        assert result == {"allocations": [], "errors": ["Invalid allocation recommendations format"]}

    def test_provider_error(self):
        result = self._generate(FakeProvider([LLMError("Gemini API request failed: HTTP 500: boom")]))
        assert result["allocations"] == []
        assert result["errors"] == ["Gemini API request failed: HTTP 500: boom"]

    def test_unexpected_exception_normalized(self):
        result = self._generate(FakeProvider([RuntimeError("socket closed")]))
        assert result["allocations"] == []
        assert "socket closed" in result["errors"][0]

    def test_non_dict_summary_dropped(self):
        reply = json.dumps({"allocations": [], "summary": "all good", "recommendations": "none"})
        result = self._generate(FakeProvider([reply]))
        assert result["summary"] == {}
        assert result["recommendations"] == []

    def test_create_adapter_uses_provider_settings(self):
        config = Config(anthropic_api_key="a", anthropic_temperature=0.1,
                        anthropic_max_tokens=1234, anthropic_model="claude-x")
        adapter = create_adapter(config, "anthropic")
        assert adapter.name() == "anthropic/claude-x"
        assert adapter._temperature == 0.1
        assert adapter._max_tokens == 1234


class TestConnectionCheck:
    def test_success(self):
        adapter = ProviderAdapter(FakeProvider([llm_reply([ALLOCATION])]))
        result = run_connection_check(adapter)
        assert result["success"] is True
        assert "fake/fake-model" in result["message"]
        assert result["sample_response"]["allocations"] == [ALLOCATION]

    def test_failure(self):
        adapter = ProviderAdapter(FakeProvider([LLMError("bad key")]))
        result = run_connection_check(adapter)
        assert result == {"success": False, "message": "Connection test failed: bad key"}

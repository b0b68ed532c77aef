"""
Google Gemini LLM provider implementation.

Plain REST over requests. No SDK: the generateContent endpoint is one POST.
Auth is the `key` query parameter. Gemini has no separate system role in
this API version, so the system prompt is sent as the first text part.
Reply text lives at candidates[0].content.parts[0].text.
"""

import logging

import requests

from llm.provider import LLMProvider, LLMResponse, LLMError, LLMConfigError

log = logging.getLogger(__name__)

SAFETY_CATEGORIES = [
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
]


class GeminiProvider(LLMProvider):
    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com",
        api_version: str = "v1beta",
        timeout: float = 60,
        top_k: int = 40,
        top_p: float = 0.95,
    ):
        if not api_key:
            raise LLMConfigError("GEMINI_API_KEY not set")
        self._api_key = api_key
        self._model = model
        self._base_url = (base_url or "https://generativelanguage.googleapis.com").rstrip("/")
        self._api_version = api_version or "v1beta"
        self._timeout = timeout
        self._top_k = top_k
        self._top_p = top_p
        self._session = requests.Session()
        self._session.headers["Content-Type"] = "application/json"

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/{self._api_version}/models/{self._model}:generateContent"

    def build_payload(self, system_prompt: str, user_prompt: str,
                      temperature: float, max_tokens: int) -> dict:
        return {
            "contents": [
                {
                    "parts": [
                        {"text": system_prompt},
                        {"text": user_prompt},
                    ]
                }
            ],
            "generationConfig": {
                "temperature": temperature,
                "topK": self._top_k,
                "topP": self._top_p,
                "maxOutputTokens": max_tokens,
            },
            "safetySettings": [
                {"category": c, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
                for c in SAFETY_CATEGORIES
            ],
        }

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 8192,
        json_output: bool = False,
    ) -> LLMResponse:
        payload = self.build_payload(system_prompt, user_prompt, temperature, max_tokens)
        try:
            resp = self._session.post(
                self.endpoint,
                params={"key": self._api_key},
                json=payload,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise LLMError(f"Gemini API request failed: {e}") from e

        if resp.status_code != 200:
            raise LLMError(f"Gemini API request failed: HTTP {resp.status_code}: {resp.text[:300]}")

        try:
            data = resp.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMError("Invalid response structure from Gemini") from e

        usage = data.get("usageMetadata") or {}
        return LLMResponse(
            text=text,
            input_tokens=usage.get("promptTokenCount", 0),
            output_tokens=usage.get("candidatesTokenCount", 0),
            model=self._model,
        )

    def name(self) -> str:
        return f"gemini/{self._model}"

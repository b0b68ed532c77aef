"""
Claude (Anthropic) LLM provider implementation.

Auth is the x-api-key header plus anthropic-version, both set by the SDK.
Reply text lives at content[0].text.
"""

from llm.provider import LLMProvider, LLMResponse, LLMError, LLMConfigError


class ClaudeProvider(LLMProvider):
    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-sonnet-20240229",
        base_url: str | None = None,
        timeout: float = 60,
    ):
        if not api_key:
            raise LLMConfigError("ANTHROPIC_API_KEY not set")
        try:
            import anthropic
        except ImportError:
            raise LLMConfigError("anthropic package not installed: pip install anthropic")
        kwargs = {"api_key": api_key, "timeout": timeout, "max_retries": 0}
        if base_url:
            kwargs["base_url"] = base_url
        self._client = anthropic.Anthropic(**kwargs)
        self._model = model

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
        json_output: bool = False,
    ) -> LLMResponse:
        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except Exception as e:
            raise LLMError(f"Anthropic API request failed: {e}") from e

        if not response.content or not getattr(response.content[0], "text", None):
            raise LLMError("Invalid response structure from Anthropic")

        usage = response.usage
        return LLMResponse(
            text=response.content[0].text,
            input_tokens=usage.input_tokens if usage else 0,
            output_tokens=usage.output_tokens if usage else 0,
            model=self._model,
        )

    def name(self) -> str:
        return f"anthropic/{self._model}"

"""
OpenAI LLM provider implementation.

Bearer auth via the SDK. Uses forced JSON response mode when asked.
Reply text lives at choices[0].message.content.
"""

from llm.provider import LLMProvider, LLMResponse, LLMError, LLMConfigError


class OpenAIProvider(LLMProvider):
    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4",
        base_url: str | None = None,
        timeout: float = 60,
    ):
        if not api_key:
            raise LLMConfigError("OPENAI_API_KEY not set")
        try:
            import openai
        except ImportError:
            raise LLMConfigError("openai package not installed: pip install openai")
        kwargs = {"api_key": api_key, "timeout": timeout, "max_retries": 0}
        if base_url:
            kwargs["base_url"] = base_url
        self._client = openai.OpenAI(**kwargs)
        self._model = model

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
        json_output: bool = False,
    ) -> LLMResponse:
        extra = {"response_format": {"type": "json_object"}} if json_output else {}
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                **extra,
            )
        except Exception as e:
            raise LLMError(f"OpenAI API request failed: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            raise LLMError("Invalid response structure from OpenAI")

        usage = response.usage
        return LLMResponse(
            text=response.choices[0].message.content,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self._model,
        )

    def name(self) -> str:
        return f"openai/{self._model}"

"""
Provider factory. Reads config, returns the right LLMProvider.
"""

from config.settings import Config, DEFAULT_BASE_URLS
from llm.provider import LLMProvider, LLMConfigError

PROVIDERS = {
    "gemini": "Google Gemini",
    "openai": "OpenAI GPT",
    "anthropic": "Anthropic Claude",
}

REQUIRED_FIELDS = {
    "gemini": ["api_key"],
    "openai": ["api_key"],
    "anthropic": ["api_key"],
}


def available_providers() -> dict[str, str]:
    return dict(PROVIDERS)


def resolve_provider_name(config: Config, provider_name: str | None = None) -> str:
    """Explicit name wins, otherwise the configured default. Raises on unknown names."""
    name = (provider_name or config.llm_default_provider or "").strip().lower()
    if name not in PROVIDERS:
        raise LLMConfigError(
            f"Unsupported LLM provider: '{name}'. "
            f"Set LLM_DEFAULT_PROVIDER to one of: {', '.join(PROVIDERS)}."
        )
    return name


def create_provider(config: Config, provider_name: str | None = None) -> LLMProvider:
    """Create LLM provider based on config. Provider selected at runtime."""
    provider = resolve_provider_name(config, provider_name)
    settings = config.provider_settings(provider)

    if provider == "gemini":
        from llm.gemini_provider import GeminiProvider
        return GeminiProvider(
            api_key=settings["api_key"],
            model=settings["model"],
            base_url=settings["base_url"],
            api_version=settings["api_version"],
            timeout=config.allocation_timeout,
        )
    elif provider == "openai":
        from llm.openai_provider import OpenAIProvider
        return OpenAIProvider(
            api_key=settings["api_key"],
            model=settings["model"],
            base_url=settings["base_url"] or None,
            timeout=config.allocation_timeout,
        )
    else:
        from llm.claude_provider import ClaudeProvider
        return ClaudeProvider(
            api_key=settings["api_key"],
            model=settings["model"],
            base_url=settings["base_url"] or None,
            timeout=config.allocation_timeout,
        )


def validate_config(provider_name: str, provider_config: dict) -> bool:
    """
    True iff every required field for the provider is non-empty.
    Advisory only: create_provider does not call this.
    """
    key = provider_name.lower()
    if key not in REQUIRED_FIELDS:
        raise LLMConfigError(f"Unsupported LLM provider: '{provider_name}'")
    return all(provider_config.get(field) for field in REQUIRED_FIELDS[key])


def provider_status(config: Config) -> dict[str, dict]:
    """Per provider: configured?, custom endpoint?, model, default?"""
    status = {}
    for key, display_name in PROVIDERS.items():
        settings = config.provider_settings(key)
        base_url = (settings.get("base_url") or "").rstrip("/")
        status[key] = {
            "name": display_name,
            "configured": validate_config(key, settings),
            "has_custom_endpoint": bool(base_url) and base_url != DEFAULT_BASE_URLS[key].rstrip("/"),
            "model": settings.get("model"),
            "default": key == config.llm_default_provider.lower(),
        }
    return status

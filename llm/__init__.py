from llm.factory import (
    available_providers,
    create_provider,
    provider_status,
    validate_config,
)
from llm.provider import LLMProvider, LLMResponse, LLMError, LLMConfigError

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "LLMError",
    "LLMConfigError",
    "available_providers",
    "create_provider",
    "provider_status",
    "validate_config",
]

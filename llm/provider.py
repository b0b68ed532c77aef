"""
LLMProvider interface. The only vendor-specific seam in the system.

Every LLM call goes through this interface. A provider knows how to
wrap a prompt in its vendor's request envelope and how to dig the reply
text back out of the vendor's response envelope. Nothing else. Prompt
content and reply parsing are shared and live in allocation/*.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class LLMResponse:
    """What comes back from any LLM call."""
    text: str
    input_tokens: int
    output_tokens: int
    model: str


class LLMProvider(ABC):
    """
    Single interface for all LLM providers.

    Design notes:
    - One method: `complete`.
    - System prompt + user prompt. No chat history.
    - `json_output` asks for the vendor's forced-JSON mode where one
      exists. Providers without it ignore the flag; the prompt already
      demands JSON.
    - Implementations raise LLMError for every failure: HTTP status,
      network, or a response envelope without the expected text field.
    """

    @abstractmethod
    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
        json_output: bool = False,
    ) -> LLMResponse:
        """
        One round trip to the vendor.

        Args:
            system_prompt: Role instructions (the allocator persona).
            user_prompt: Rendered allocation data plus output contract.
            temperature: Sampling temperature from the provider's config block.
            max_tokens: Reply budget from the provider's config block.
            json_output: Ask for a JSON-only reply where the vendor has that mode.

        Returns:
            LLMResponse with the raw reply text and token usage.

        Raises:
            LLMError: Transport failure, non-success status, or missing reply text.
        """
        ...

    @abstractmethod
    def name(self) -> str:
        """Return provider name for logging."""
        ...


class LLMError(Exception):
    """Raised when an LLM call fails."""
    pass


class LLMConfigError(LLMError):
    """Unknown provider or missing credentials. Raised before any network call."""
    pass

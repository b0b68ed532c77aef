"""
Configuration. All settings from env vars (or a .env file).
No YAML. No TOML parsing. Just a dataclass with env-backed defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path

# Auto-load .env file so you don't need `export $(grep ...)` every time
from dotenv import load_dotenv
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


DEFAULT_BASE_URLS = {
    "gemini": "https://generativelanguage.googleapis.com",
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com",
}


@dataclass
class Config:
    # LLM provider: "gemini" | "openai" | "anthropic"
    llm_default_provider: str = os.environ.get("LLM_DEFAULT_PROVIDER", "gemini")

    # API keys, read from env only
    gemini_api_key: str = os.environ.get("GEMINI_API_KEY", "")
    openai_api_key: str = os.environ.get("OPENAI_API_KEY", "")
    anthropic_api_key: str = os.environ.get("ANTHROPIC_API_KEY", "")

    # Endpoints
    gemini_base_url: str = os.environ.get("GEMINI_BASE_URL", DEFAULT_BASE_URLS["gemini"])
    gemini_api_version: str = os.environ.get("GEMINI_API_VERSION", "v1beta")
    openai_base_url: str = os.environ.get("OPENAI_BASE_URL", DEFAULT_BASE_URLS["openai"])
    anthropic_base_url: str = os.environ.get("ANTHROPIC_BASE_URL", DEFAULT_BASE_URLS["anthropic"])

    # Models
    gemini_model: str = os.environ.get("GEMINI_MODEL", "gemini-1.5-flash")
    openai_model: str = os.environ.get("OPENAI_MODEL", "gpt-4")
    anthropic_model: str = os.environ.get("ANTHROPIC_MODEL", "claude-3-sonnet-20240229")

    # Sampling. Low temperature: allocations should be reproducible-ish.
    gemini_temperature: float = float(os.environ.get("GEMINI_TEMPERATURE", "0.3"))
    openai_temperature: float = float(os.environ.get("OPENAI_TEMPERATURE", "0.3"))
    anthropic_temperature: float = float(os.environ.get("ANTHROPIC_TEMPERATURE", "0.3"))

    gemini_max_tokens: int = int(os.environ.get("GEMINI_MAX_TOKENS", "8192"))
    openai_max_tokens: int = int(os.environ.get("OPENAI_MAX_TOKENS", "4000"))
    anthropic_max_tokens: int = int(os.environ.get("ANTHROPIC_MAX_TOKENS", "4000"))

    # ── Allocation policy ──
    # Total attempts per provider call (1 = no retry)
    allocation_max_retries: int = int(os.environ.get("LLM_ALLOCATION_MAX_RETRIES", "3"))
    # Seconds. Passed to the vendor HTTP client as a hard request timeout.
    allocation_timeout: float = float(os.environ.get("LLM_ALLOCATION_TIMEOUT", "60"))
    # Projects per provider call
    allocation_batch_size: int = int(os.environ.get("LLM_ALLOCATION_BATCH_SIZE", "50"))
    # Seconds, multiplied by the attempt number
    allocation_retry_backoff: float = float(os.environ.get("LLM_ALLOCATION_RETRY_BACKOFF", "2.0"))
    fallback_to_rule_based: bool = _env_bool("LLM_FALLBACK_TO_RULE_BASED")

    # Debug logging of LLM traffic. Prompts contain student names and emails.
    log_prompts: bool = _env_bool("LLM_LOG_PROMPTS")
    log_responses: bool = _env_bool("LLM_LOG_RESPONSES")

    # Storage
    db_path: Path = Path(os.environ.get("ALLOCATION_DB_PATH", "data/allocation.db"))

    def provider_settings(self, provider: str) -> dict:
        """Configuration block for one provider. Empty dict for unknown names."""
        blocks = {
            "gemini": {
                "api_key": self.gemini_api_key,
                "base_url": self.gemini_base_url,
                "model": self.gemini_model,
                "api_version": self.gemini_api_version,
                "temperature": self.gemini_temperature,
                "max_tokens": self.gemini_max_tokens,
            },
            "openai": {
                "api_key": self.openai_api_key,
                "base_url": self.openai_base_url,
                "model": self.openai_model,
                "temperature": self.openai_temperature,
                "max_tokens": self.openai_max_tokens,
            },
            "anthropic": {
                "api_key": self.anthropic_api_key,
                "base_url": self.anthropic_base_url,
                "model": self.anthropic_model,
                "temperature": self.anthropic_temperature,
                "max_tokens": self.anthropic_max_tokens,
            },
        }
        return blocks.get(provider.lower(), {})


def load_config() -> Config:
    return Config()

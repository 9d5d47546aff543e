"""
Labsim Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


class Config:
    """Library configuration loaded from environment variables."""

    # Remote Simulation Service
    API_BASE_URL: str = os.getenv("LABSIM_API_BASE_URL", "http://localhost:5000/api")
    API_TIMEOUT_SECONDS: float = float(os.getenv("LABSIM_API_TIMEOUT_SECONDS", "30"))
    # Opaque bearer token forwarded as-is; how it is obtained is the caller's business
    API_TOKEN: str | None = os.getenv("LABSIM_API_TOKEN")

    # LLM Provider Configuration
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "google")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gemini-2.5-flash")

    # API Keys
    GOOGLE_API_KEY: str | None = os.getenv("GOOGLE_API_KEY")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")
    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")

    # Local LLM Configuration (Ollama)
    OLLAMA_BASE_URL: str = os.getenv("OLLAMA_BASE_URL", "http://127.0.0.1:11434")

    # Auto-save policy
    AUTOSAVE_INTERVAL_SECONDS: float = float(os.getenv("AUTOSAVE_INTERVAL_SECONDS", "30"))
    AUTOSAVE_COOLDOWN_SECONDS: float = float(os.getenv("AUTOSAVE_COOLDOWN_SECONDS", "10"))

    # Session defaults
    DEFAULT_PROCEDURE_STEPS: int = int(os.getenv("DEFAULT_PROCEDURE_STEPS", "5"))
    GAME_TOTAL_ACTIONS: int = int(os.getenv("GAME_TOTAL_ACTIONS", "10"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    _PROVIDER_KEYS = {
        "google": "GOOGLE_API_KEY",
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
    }

    @classmethod
    def llm_configured(cls, provider: str | None = None) -> bool:
        """Return True when ``provider`` (default: LLM_PROVIDER) can be called."""
        provider = (provider or cls.LLM_PROVIDER or "").lower()
        if not provider:
            return False
        if provider == "ollama":
            return bool(cls.OLLAMA_BASE_URL)
        key_attr = cls._PROVIDER_KEYS.get(provider)
        if key_attr is None:
            return False
        return bool(getattr(cls, key_attr))

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if values are unusable."""
        if cls.AUTOSAVE_INTERVAL_SECONDS <= 0:
            raise ValueError("AUTOSAVE_INTERVAL_SECONDS must be positive")

        if cls.AUTOSAVE_COOLDOWN_SECONDS < 0:
            raise ValueError("AUTOSAVE_COOLDOWN_SECONDS cannot be negative")

        if cls.AUTOSAVE_COOLDOWN_SECONDS > cls.AUTOSAVE_INTERVAL_SECONDS:
            raise ValueError(
                "AUTOSAVE_COOLDOWN_SECONDS must not exceed AUTOSAVE_INTERVAL_SECONDS; "
                "otherwise scheduled saves would be suppressed by the cooldown."
            )

        if cls.DEFAULT_PROCEDURE_STEPS <= 0:
            raise ValueError("DEFAULT_PROCEDURE_STEPS must be >= 1")

        if cls.GAME_TOTAL_ACTIONS <= 0:
            raise ValueError("GAME_TOTAL_ACTIONS must be >= 1")

        if cls.LLM_PROVIDER.lower() == "ollama" and not cls.OLLAMA_BASE_URL:
            raise ValueError(
                "OLLAMA_BASE_URL is required when using the 'ollama' provider "
                "(e.g., http://localhost:11434)"
            )

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Labsim Configuration:",
            f"  API Base URL: {cls.API_BASE_URL}",
            f"  API Timeout: {cls.API_TIMEOUT_SECONDS}s",
            f"  LLM Provider: {cls.LLM_PROVIDER}",
            f"  LLM Model: {cls.LLM_MODEL}",
            f"  LLM Configured: {'yes' if cls.llm_configured() else 'no (fallback content)'}",
            f"  Auto-save: every {cls.AUTOSAVE_INTERVAL_SECONDS}s "
            f"(cooldown {cls.AUTOSAVE_COOLDOWN_SECONDS}s)",
        ]
        return "\n".join(lines)

"""
Configuration Management Module

This module handles all application configuration using environment variables
with sensible defaults. It follows the 12-factor app methodology for configuration.

Usage:
    from nimbus_assistant.config import settings
    print(settings.knowledge.dataset_path)

Environment variables are loaded from .env file (if present) and can be
overridden by system environment variables.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
# This should be called before accessing any environment variables
load_dotenv()

DEFAULT_DATASET_PATH = str(Path(__file__).resolve().parent.parent / "data" / "dataset.json")


def get_env(key: str, default: str = "", required: bool = False) -> str:
    """
    Get an environment variable with optional default and validation.

    Args:
        key: The environment variable name
        default: Default value if not set
        required: If True, raises ValueError when not set

    Returns:
        The environment variable value or default

    Raises:
        ValueError: If required=True and the variable is not set
    """
    value = os.getenv(key, default)
    if required and not value:
        raise ValueError(f"Required environment variable '{key}' is not set")
    return value


def get_env_int(key: str, default: int) -> int:
    """Get an environment variable as integer."""
    return int(get_env(key, str(default)))


def get_env_float(key: str, default: float) -> float:
    """Get an environment variable as float."""
    return float(get_env(key, str(default)))


def get_env_bool(key: str, default: bool) -> bool:
    """Get an environment variable as boolean."""
    value = get_env(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


def get_env_list(key: str, default: str) -> List[str]:
    """Get a comma separated environment variable as a list of strings."""
    return [item.strip() for item in get_env(key, default).split(",") if item.strip()]


@dataclass
class GeminiConfig:
    """
    Gemini text-generation service configuration.

    Attributes:
        api_key: Google Generative Language API key
        base_url: REST endpoint root
        model: Model name used for generateContent calls
        temperature: Sampling temperature
        top_k: Top-k sampling parameter
        top_p: Nucleus sampling parameter
        max_output_tokens: Maximum tokens in a generated answer
        max_retries: Attempts made when the API rate limits a request
    """
    api_key: str = field(default_factory=lambda: get_env("GEMINI_API_KEY"))
    base_url: str = field(default_factory=lambda: get_env("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"))
    model: str = field(default_factory=lambda: get_env("GEMINI_MODEL", "gemini-1.5-pro"))
    temperature: float = field(default_factory=lambda: get_env_float("GEMINI_TEMPERATURE", 0.7))
    top_k: int = field(default_factory=lambda: get_env_int("GEMINI_TOP_K", 40))
    top_p: float = field(default_factory=lambda: get_env_float("GEMINI_TOP_P", 0.95))
    max_output_tokens: int = field(default_factory=lambda: get_env_int("GEMINI_MAX_OUTPUT_TOKENS", 1024))
    max_retries: int = field(default_factory=lambda: get_env_int("GEMINI_MAX_RETRIES", 2))

    def validate(self) -> bool:
        """Validate that required Gemini settings are configured."""
        if not self.api_key:
            raise ValueError("GEMINI_API_KEY is required")
        if not self.model:
            raise ValueError("GEMINI_MODEL is required")
        return True

    @property
    def generate_url(self) -> str:
        """Get the full URL for generateContent calls."""
        base = self.base_url.rstrip("/")
        model = self.model if self.model.startswith("models/") else f"models/{self.model}"
        return f"{base}/{model}:generateContent"


@dataclass
class KnowledgeConfig:
    """
    Knowledge-base matching configuration.

    Thresholds are the minimum similarity a candidate must strictly exceed
    before its matcher reports it.

    Attributes:
        dataset_path: Path to the bundled JSON dataset
        product_threshold: Threshold for the product catalog
        faq_threshold: Threshold for FAQs
        ticket_threshold: Threshold for resolved support tickets
        article_threshold: Threshold for employee knowledge articles
        company_threshold: Threshold for company information
        generation_timeout: Seconds to wait for the generation service
    """
    dataset_path: str = field(default_factory=lambda: get_env("KB_DATASET_PATH", DEFAULT_DATASET_PATH))
    product_threshold: float = field(default_factory=lambda: get_env_float("KB_PRODUCT_THRESHOLD", 0.4))
    faq_threshold: float = field(default_factory=lambda: get_env_float("KB_FAQ_THRESHOLD", 0.6))
    ticket_threshold: float = field(default_factory=lambda: get_env_float("KB_TICKET_THRESHOLD", 0.6))
    article_threshold: float = field(default_factory=lambda: get_env_float("KB_ARTICLE_THRESHOLD", 0.6))
    company_threshold: float = field(default_factory=lambda: get_env_float("KB_COMPANY_THRESHOLD", 0.3))
    generation_timeout: float = field(default_factory=lambda: get_env_float("GENERATION_TIMEOUT_SECONDS", 8.0))

    @property
    def path(self) -> Path:
        """Get the dataset location as a Path object."""
        return Path(self.dataset_path)

    @property
    def thresholds(self) -> Dict[str, float]:
        """Thresholds keyed by matcher name."""
        return {
            "products": self.product_threshold,
            "faqs": self.faq_threshold,
            "support_tickets": self.ticket_threshold,
            "employee_knowledge_base": self.article_threshold,
            "company": self.company_threshold,
        }

    def validate(self) -> bool:
        """Validate knowledge settings."""
        for name, value in self.thresholds.items():
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Threshold for {name} must be between 0 and 1")
        if self.generation_timeout <= 0:
            raise ValueError("GENERATION_TIMEOUT_SECONDS must be positive")
        return True


@dataclass
class DatabaseConfig:
    """
    Chat session store configuration.

    Attributes:
        url: SQLAlchemy database URL
        enabled: Whether chat messages are persisted at all
    """
    url: str = field(default_factory=lambda: get_env("DATABASE_URL", "sqlite:///./nimbus_assistant.db"))
    enabled: bool = field(default_factory=lambda: get_env_bool("ENABLE_SESSION_STORE", True))


@dataclass
class SpeechConfig:
    """
    Azure Speech configuration for server-side text-to-speech.

    When not configured, the TTS endpoint hands the text back so the
    browser can speak it with the Web Speech API.
    """
    api_key: str = field(default_factory=lambda: get_env("AZURE_SPEECH_KEY"))
    region: str = field(default_factory=lambda: get_env("AZURE_SPEECH_REGION"))
    voice_name: str = field(default_factory=lambda: get_env("AZURE_SPEECH_VOICE", "en-US-JennyNeural"))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.region)


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        file: Optional log file path
    """
    level: str = field(default_factory=lambda: get_env("LOG_LEVEL", "INFO"))
    file: Optional[str] = field(default_factory=lambda: get_env("LOG_FILE") or None)


@dataclass
class Settings:
    """
    Main settings container aggregating all configuration sections.

    This is the primary configuration interface for the application.
    Access via the singleton `settings` instance.

    Example:
        from nimbus_assistant.config import settings

        settings.gemini.validate()
        threshold = settings.knowledge.faq_threshold
    """
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    knowledge: KnowledgeConfig = field(default_factory=KnowledgeConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    speech: SpeechConfig = field(default_factory=SpeechConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Application-level settings
    app_env: str = field(default_factory=lambda: get_env("APP_ENV", "development"))
    cors_origins: List[str] = field(default_factory=lambda: get_env_list("CORS_ORIGINS", "http://localhost:3000"))
    rate_limit_requests: int = field(default_factory=lambda: get_env_int("RATE_LIMIT_REQUESTS", 60))
    rate_limit_window: int = field(default_factory=lambda: get_env_int("RATE_LIMIT_WINDOW_SECONDS", 60))

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    def validate_all(self) -> bool:
        """
        Validate all configuration sections.

        Returns:
            True if all validations pass

        Raises:
            ValueError: If any validation fails
        """
        self.gemini.validate()
        self.knowledge.validate()
        return True


# Singleton settings instance
# Import this in other modules: from nimbus_assistant.config import settings
settings = Settings()

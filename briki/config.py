import os
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """
    Application settings with validation.
    Uses Pydantic Settings for automatic env var loading and type validation.
    """

    # --- Directory Paths ---
    base_dir: str = Field(
        default_factory=lambda: os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
        description="Base directory of the project",
    )

    storage_dir: str | None = Field(
        default=None,
        description="Directory for client-local persistence (defaults to <base_dir>/.briki)",
    )

    @property
    def resolved_storage_dir(self) -> str:
        """Directory where chat history and compare selection are persisted."""
        return self.storage_dir or os.path.join(self.base_dir, ".briki")

    # --- Model Configuration ---
    reply_model: str = Field(
        default="gpt-4o-mini",
        description="LLM that writes the assistant replies",
    )

    summary_model: str = Field(
        default="gemini-2.5-flash",
        description="Fast LLM that summarizes uploaded policy documents",
    )

    # --- LLM Service Configuration ---
    llm_timeout: int = Field(
        default=30,
        description="Timeout in seconds for LLM calls",
        ge=5,
        le=120,
    )
    llm_max_retries: int = Field(
        default=3,
        description="Maximum retry attempts for failed LLM calls",
        ge=1,
        le=5,
    )
    llm_rate_limit: int = Field(
        default=3,
        description="Maximum concurrent LLM requests (rate limiting)",
        ge=1,
        le=10,
    )

    # --- Recommendation / Comparison ---
    max_recommended_plans: int = Field(
        default=4, description="Plans returned per recommendation", ge=1, le=10
    )
    compare_max_plans: int = Field(
        default=8, description="Maximum plans in the comparison selection", ge=2
    )
    compare_max_plans_per_category: int = Field(
        default=4, description="Maximum plans per category in the comparison", ge=1
    )

    # --- Persistence keys ---
    chat_storage_key: str = Field(
        default="briki_chat_history", description="Storage key for the chat session"
    )
    compare_storage_key: str = Field(
        default="briki-compare-plans", description="Storage key for the compare selection"
    )

    # --- Uploads ---
    max_upload_size_mb: int = Field(
        default=10, description="Maximum PDF size accepted for upload", ge=1, le=50
    )

    # --- Logging ---
    log_level: str = Field(default="INFO", description="Root log level")
    structured_logs: bool = Field(default=True, description="Emit JSON log lines")

    # --- API Keys (optional: only needed by the LLM/Supabase adapters) ---
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    google_api_key: str | None = Field(default=None, description="Google API key for Gemini")
    supabase_url: str | None = Field(default=None, description="Supabase project URL")
    supabase_service_key: str | None = Field(
        default=None, description="Supabase service key"
    )

    class Config:
        """Pydantic config."""

        env_file = os.getenv("DOTENV_PATH", ".env")
        case_sensitive = False
        extra = "ignore"


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get or create settings instance.
    Singleton pattern for consistent configuration.

    Returns:
        Settings instance

    Raises:
        ValidationError: If env vars are present but invalid
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


settings = get_settings()

# Model parameters
REPLY_MODEL = settings.reply_model
SUMMARY_MODEL = settings.summary_model

# LLM Service parameters
LLM_TIMEOUT = settings.llm_timeout
LLM_MAX_RETRIES = settings.llm_max_retries
LLM_RATE_LIMIT = settings.llm_rate_limit

# Recommendation / comparison parameters
MAX_RECOMMENDED_PLANS = settings.max_recommended_plans
COMPARE_MAX_PLANS = settings.compare_max_plans
COMPARE_MAX_PLANS_PER_CATEGORY = settings.compare_max_plans_per_category

# Persistence
STORAGE_DIR = settings.resolved_storage_dir
CHAT_STORAGE_KEY = settings.chat_storage_key
COMPARE_STORAGE_KEY = settings.compare_storage_key

MAX_UPLOAD_SIZE_BYTES = settings.max_upload_size_mb * 1024 * 1024

# NOTE: API keys are NOT exposed globally. Access them via get_settings():
#   from briki.config import get_settings
#   api_key = get_settings().openai_api_key


def check_env_vars(require: tuple[str, ...] = ("openai_api_key",)) -> None:
    """
    Validates that the credentials needed by the chosen adapters are set.

    Args:
        require: Names of Settings fields that must be non-empty

    Raises:
        ValueError: If a required credential is missing
    """
    current = get_settings()
    missing = [name for name in require if not getattr(current, name)]
    if missing:
        names = ", ".join(name.upper() for name in missing)
        raise ValueError(f"Missing required environment variables: {names}")

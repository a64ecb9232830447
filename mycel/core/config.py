"""Configuration management for Mycel."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # Sandboxed environments may not expose .env; rely on the process environment
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    MYCEL_ENV: str = Field(default="dev", description="Environment: dev, test, staging, prod")
    MYCEL_CONFIG_DIR: str = Field(
        default="config", description="Directory holding domain.json and persona.json"
    )

    # LLM configuration
    ANTHROPIC_API_KEY: str = Field(default="", description="Anthropic API key")
    LLM_MODEL: str = Field(default="claude-sonnet-4-5-20250929", description="Model for all agents")
    LLM_MAX_TOKENS: int = Field(default=4000, description="Max output tokens per agent call")
    LLM_TEMPERATURE: float = Field(default=0.2, description="Sampling temperature for agents")
    LLM_MAX_RETRIES: int = Field(default=3, description="Retries on transient LLM errors")
    LLM_RETRY_BASE_DELAY: float = Field(
        default=1.0, description="Base delay in seconds for exponential backoff"
    )

    # Embedding configuration
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key for embeddings")
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=768, description="Embedding vector dimension")

    # Web search / enrichment
    SERPAPI_API_KEY: str = Field(default="", description="SerpAPI key for claim validation")
    WEB_SEARCH_TIMEOUT: int = Field(default=15, description="Web search timeout in seconds")
    ENRICHMENT_MAX_SEARCHES: int = Field(
        default=3, description="Max web searches per enriched turn"
    )
    SEARCH_CACHE_TTL_DAYS: int = Field(default=7, description="Search cache time-to-live")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If environment variables have invalid values
    """
    return Settings()

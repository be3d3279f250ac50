"""Configuration management for the Draftwise gateway."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # AI gateway configuration (required)
    AI_GATEWAY_ACCOUNT_ID: str = Field(..., description="Gateway account identifier")
    AI_GATEWAY_TOKEN: str = Field(..., description="Token for the gateway itself (cf-aig-authorization)")
    AI_WORKER_TOKEN: str = Field(..., description="Token for the Workers AI provider behind the gateway")

    # Environment
    DRAFTWISE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # AI gateway endpoints and models
    AI_GATEWAY_BASE_URL: str = Field(
        default="https://gateway.ai.cloudflare.com/v1", description="Gateway base URL"
    )
    AI_GATEWAY_SLUG: str = Field(default="draftwise-ai", description="Gateway slug")
    EMBEDDING_MODEL: str = Field(
        default="@cf/baai/bge-base-en-v1.5", description="Embedding model id"
    )
    CHAT_MODEL: str = Field(
        default="@cf/meta/llama-3.1-8b-instruct", description="Chat completion model id"
    )
    CHAT_MAX_TOKENS: int = Field(default=1024, description="Max output tokens for chat turns")
    CHAT_TEMPERATURE: float = Field(default=0.7, description="Sampling temperature")
    AGENT_MAX_TOKENS: int = Field(
        default=8192, description="Max output tokens for full-document rewrites"
    )
    AI_REQUEST_TIMEOUT_SECONDS: float = Field(
        default=120.0, description="Transport timeout for gateway calls"
    )
    EMBEDDING_BATCH_SIZE: int = Field(default=50, description="Texts per embedding request")

    # Token budgeting
    CHAT_CONTEXT_WINDOW_TOKENS: int = Field(default=8192, description="Model context window")
    CHAT_RESPONSE_RESERVE_TOKENS: int = Field(
        default=1000, description="Tokens reserved for the model's answer"
    )

    # Retrieval
    RETRIEVAL_TOP_K: int = Field(default=5, description="Chunks to retrieve per chat turn")
    RETRIEVAL_STRATEGY: str = Field(
        default="keyword", description="Chunk scoring strategy: keyword or embedding"
    )

    # Chunking
    CHUNK_TARGET_CHARS: int = Field(default=400, description="Target characters per chunk")
    CHUNK_OVERLAP_CHARS: int = Field(
        default=80, description="Approximate overlap; overlap/10 words are carried over"
    )

    # Chat history
    HISTORY_CACHE_MAX_LENGTH: int = Field(default=100, description="Turns kept per user in cache")
    HISTORY_CACHE_TTL_SECONDS: int = Field(
        default=60 * 60 * 24 * 7, description="Cache entry time-to-live"
    )
    HISTORY_DISPLAY_LIMIT: int = Field(default=50, description="Default history listing size")

    # Agent rewrite guardrail
    AGENT_MAX_DOCUMENT_BYTES: int = Field(
        default=500 * 1024, description="Largest document markup accepted for a rewrite"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()

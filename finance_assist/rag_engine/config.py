"""
Configuration Management for Finance Assist

Handles environment variables, settings validation, and configuration defaults
for the reader, splitter, embedder, vector store, chat model and HTTP server.
"""

from typing import Optional
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

API_KEY_PLACEHOLDERS = {"sk-your-openai-api-key-here", "your-pinecone-api-key-here"}


class OpenAIConfig(BaseSettings):
    """OpenAI API configuration settings."""

    api_key: str = ""
    base_url: Optional[str] = None
    model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    max_tokens: Optional[int] = None
    temperature: float = 0.7
    timeout: float = 60.0

    model_config = SettingsConfigDict(env_prefix="OPENAI_", env_file=".env", extra="ignore")

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v):
        # Allow empty during import, validate when actually used
        if v and v in API_KEY_PLACEHOLDERS:
            raise ValueError("OpenAI API key placeholder must be replaced with real key")
        return v

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v):
        if not 0.0 <= v <= 2.0:
            raise ValueError("Temperature must be between 0.0 and 2.0")
        return v

    def validate_for_use(self):
        """Validate config is ready for actual use."""
        if not self.api_key:
            raise ValueError("OpenAI API key must be provided")


class EmbeddingConfig(BaseSettings):
    """Embedding backend configuration settings."""

    backend: str = "openai"
    dimension: int = Field(default=1536, gt=0)
    batch_size: int = Field(default=100, gt=0)

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_", env_file=".env", extra="ignore")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v):
        v = v.lower()
        if v not in ("openai", "hashing"):
            raise ValueError("Embedding backend must be 'openai' or 'hashing'")
        return v


class VectorStoreConfig(BaseSettings):
    """Vector store configuration settings."""

    backend: str = "memory"

    model_config = SettingsConfigDict(env_prefix="VECTOR_STORE_", env_file=".env", extra="ignore")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v):
        v = v.lower()
        if v not in ("memory", "pinecone"):
            raise ValueError("Vector store backend must be 'memory' or 'pinecone'")
        return v


class PineconeConfig(BaseSettings):
    """Pinecone vector database configuration settings."""

    api_key: str = ""
    index_name: str = "finance-assist"
    cloud: str = "aws"
    region: str = "us-east-1"
    namespace: str = ""

    model_config = SettingsConfigDict(env_prefix="PINECONE_", env_file=".env", extra="ignore")

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v):
        if v and v in API_KEY_PLACEHOLDERS:
            raise ValueError("Pinecone API key placeholder must be replaced with real key")
        return v

    def validate_for_use(self):
        """Validate config is ready for actual use."""
        if not self.api_key:
            raise ValueError("Pinecone API key must be provided")


class SplitterConfig(BaseSettings):
    """Token text splitter configuration settings."""

    chunk_size: int = Field(default=800, gt=0)
    min_chunk_size_chars: int = Field(default=350, ge=0)
    max_num_chunks: int = Field(default=10000, gt=0)
    keep_separator: bool = True
    encoding: str = "cl100k_base"

    model_config = SettingsConfigDict(env_prefix="SPLITTER_", env_file=".env", extra="ignore")


class SearchConfig(BaseSettings):
    """Default similarity search settings."""

    top_k: int = Field(default=4, gt=0)
    similarity_threshold: float = 0.0

    model_config = SettingsConfigDict(env_prefix="SEARCH_", env_file=".env", extra="ignore")

    @field_validator("similarity_threshold")
    @classmethod
    def validate_threshold(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("Similarity threshold must be between 0.0 and 1.0")
        return v


class ReaderConfig(BaseSettings):
    """Document reader configuration settings."""

    timeout: float = Field(default=30.0, gt=0)
    user_agent: str = "finance-assist/1.0"
    max_content_length: int = Field(default=50 * 1024 * 1024, gt=0)

    model_config = SettingsConfigDict(env_prefix="READER_", env_file=".env", extra="ignore")


class FlaskConfig(BaseSettings):
    """Flask application configuration settings."""

    env: str = "production"
    debug: bool = False
    secret_key: str = "dev-secret-key"
    host: str = "0.0.0.0"
    port: int = 8080

    model_config = SettingsConfigDict(env_prefix="FLASK_", env_file=".env", extra="ignore")


class AssistConfig(BaseSettings):
    """Controller behaviour settings."""

    precise_error_status: bool = False
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    model_config = SettingsConfigDict(env_prefix="ASSIST_", env_file=".env", extra="ignore")

    @model_validator(mode="after")
    def normalize_log_level(self):
        self.log_level = self.log_level.upper()
        return self


class Config:
    """Main configuration class that combines all settings."""

    def __init__(self):
        # Load environment first
        load_dotenv()

        # Then initialize settings
        self.openai = OpenAIConfig()
        self.embedding = EmbeddingConfig()
        self.vector_store = VectorStoreConfig()
        self.pinecone = PineconeConfig()
        self.splitter = SplitterConfig()
        self.search = SearchConfig()
        self.reader = ReaderConfig()
        self.flask = FlaskConfig()
        self.assist = AssistConfig()

    def validate(self):
        """Validate that the selected backends have the credentials they need.

        Raises:
            ValueError: naming the first missing setting
        """
        # The chat model is always OpenAI
        self.openai.validate_for_use()
        if self.vector_store.backend == "pinecone":
            self.pinecone.validate_for_use()


# Global configuration instance - will be lazy-loaded
_config = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config():
    """Drop the cached configuration so the next get_config() re-reads the environment."""
    global _config
    _config = None

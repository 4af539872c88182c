"""
Configuration for CompSync
==========================

Environment variables:
- LLM_MODE: none|openai|openrouter (default: openai)
- OPENAI_API_KEY: API key for OpenAI; unset means templated drafts only
- OPENAI_MODEL: Model to use (default: gpt-4-turbo-preview)
- OPENROUTER_API_KEY / OPENROUTER_MODEL: alternative provider
- DATABASE_URL: snapshot database (default: sqlite:///./compsync.db)
- STORAGE_KEY: snapshot row key (default: compsync-storage)
- LOG_LEVEL: logging level (default: INFO)
"""

from typing import Optional, List
from pydantic_settings import BaseSettings
from functools import lru_cache

from .schemas import LLMMode


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # LLM Configuration
    llm_mode: LLMMode = LLMMode.OPENAI

    # OpenAI
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4-turbo-preview"
    openai_base_url: str = "https://api.openai.com/v1"

    # OpenRouter
    openrouter_api_key: Optional[str] = None
    openrouter_model: str = "openai/gpt-4-turbo"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"

    # Generation parameters
    llm_temperature: float = 0.7
    llm_max_tokens: int = 2000

    # Timeouts (seconds)
    llm_timeout: int = 30

    # Persistence
    database_url: str = "sqlite:///./compsync.db"
    storage_key: str = "compsync-storage"

    # HTTP
    cors_allow_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173"

    # Service info
    log_level: str = "INFO"
    service_version: str = "1.0.0"

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"

    def active_api_key(self) -> Optional[str]:
        """API key for the selected provider, or None"""
        if self.llm_mode == LLMMode.OPENAI:
            return self.openai_api_key or None
        if self.llm_mode == LLMMode.OPENROUTER:
            return self.openrouter_api_key or None
        return None

    def active_model(self) -> str:
        if self.llm_mode == LLMMode.OPENROUTER:
            return self.openrouter_model
        return self.openai_model

    def active_base_url(self) -> str:
        if self.llm_mode == LLMMode.OPENROUTER:
            return self.openrouter_base_url
        return self.openai_base_url

    def llm_configured(self) -> bool:
        """True when generation would make a network call"""
        return self.active_api_key() is not None

    def validate_llm_config(self) -> List[str]:
        """Validate LLM configuration, return list of warnings"""
        warnings = []

        if self.llm_mode == LLMMode.OPENAI and not self.openai_api_key:
            warnings.append("LLM_MODE=openai but OPENAI_API_KEY not set; using templated drafts")

        elif self.llm_mode == LLMMode.OPENROUTER and not self.openrouter_api_key:
            warnings.append("LLM_MODE=openrouter but OPENROUTER_API_KEY not set; using templated drafts")

        return warnings

    def cors_origins(self) -> List[str]:
        origins: List[str] = []
        for item in self.cors_allow_origins.split(","):
            origin = item.strip().strip('"').strip("'").rstrip("/")
            if origin:
                origins.append(origin)
        return origins


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Convenience function
def get_llm_mode() -> LLMMode:
    """Get current LLM mode"""
    return get_settings().llm_mode

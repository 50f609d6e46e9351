"""Application configuration"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # Target Database (MySQL)
    mysql_host: str = "localhost"
    mysql_port: int = 3306
    mysql_user: str = "root"
    mysql_password: str = ""
    mysql_database: str = "testdb"
    mysql_pool_min_size: int = 1
    mysql_pool_max_size: int = 10
    mysql_connect_timeout_seconds: int = 10

    # Cache
    cache_backend: Literal["redis", "memory"] = "redis"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0
    cache_ttl_seconds: int = 3600
    memory_cache_max_size: int = 1000

    # LLM
    llm_provider: str = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_provider_url: str = ""
    openai_api_key: str = ""
    openai_compatible_api_key: str = ""
    google_api_key: str = ""
    llm_temperature: float = 0.1
    llm_max_output_tokens: int = 2048
    llm_timeout_seconds: float = 60.0

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3001
    cors_origin: str = "http://localhost:5173"

    # Startup
    startup_sanity_checks_enabled: bool = False

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()

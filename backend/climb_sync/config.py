import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: Optional[str] = Field(None, alias="CLIMB_DATABASE_URL")
    database_pool_size: int = Field(10, alias="CLIMB_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="CLIMB_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="CLIMB_DATABASE_ECHO")
    cache_path: str = Field("data/local_cache.json", alias="CLIMB_CACHE_PATH")
    demo_mode: Optional[bool] = Field(None, alias="CLIMB_DEMO_MODE")
    use_mock_ai: bool = Field(False, alias="CLIMB_USE_MOCK_AI")
    enable_ai_features: bool = Field(False, alias="CLIMB_ENABLE_AI_FEATURES")
    use_emulator: bool = Field(False, alias="CLIMB_USE_EMULATOR")
    api_key: Optional[str] = Field(None, alias="CLIMB_API_KEY")
    remote_writes_enabled: bool = Field(True, alias="CLIMB_REMOTE_WRITES_ENABLED")
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    agent_model: str = Field("gpt-5-mini", alias="CLIMB_AGENT_MODEL")
    agent_reasoning: Literal["minimal", "low", "medium", "high"] = Field("low", alias="CLIMB_AGENT_REASONING")
    default_language: Literal["ja", "en"] = Field("en", alias="CLIMB_DEFAULT_LANGUAGE")
    default_timezone: str = Field("UTC", alias="CLIMB_DEFAULT_TIMEZONE")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


def load_settings() -> Settings:
    """Read settings from the environment without caching."""
    try:
        return Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc


@lru_cache
def get_settings() -> Settings:
    settings = load_settings()
    if settings.openai_api_key and not os.getenv("OPENAI_API_KEY"):
        os.environ["OPENAI_API_KEY"] = settings.openai_api_key
    return settings

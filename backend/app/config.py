"""Application configuration via Pydantic Settings.

Loads from .env file and environment variables.
All settings are validated at startup.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from app.schemas.analysis import LLMConfig


class Settings(BaseSettings):
    """NovelLens application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Neo4j ---
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "novellens"

    # --- Redis ---
    redis_url: str = "redis://:novellens@localhost:6379"

    # --- LLM (any OpenAI-compatible endpoint) ---
    llm_base_url: str = "https://api.openai.com/v1"
    llm_api_key: str = ""
    llm_model: str = "gpt-4o"
    llm_max_context_tokens: int = 128_000
    llm_max_output_tokens: int | None = 8192
    llm_temperature: float = 0.7
    llm_timeout: float = 600.0
    llm_requests_per_minute: float = 60

    # --- Analysis pipeline ---
    segment_template_overhead: int = 500  # estimated instruction + schema tokens per segment prompt
    batch_concurrency: int = Field(default=3, ge=1)
    summary_group_size: int = Field(default=10, ge=2)

    # --- App ---
    cors_origins: Annotated[list[str], NoDecode] = Field(default=["http://localhost:3000"])
    log_level: str = "INFO"
    log_format: str = "json"

    # --- Task Queue (arq) ---
    arq_max_jobs: int = 5
    arq_job_timeout: int = 6 * 3600  # a full-novel batch can take hours
    arq_keep_result: int = 86400

    # --- Derived ---
    debug: bool = False

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    def llm_config(self) -> LLMConfig:
        """Build the model-call configuration from the LLM settings."""
        return LLMConfig(
            base_url=self.llm_base_url,
            api_key=self.llm_api_key,
            model=self.llm_model,
            max_context_tokens=self.llm_max_context_tokens,
            max_output_tokens=self.llm_max_output_tokens,
            temperature=self.llm_temperature,
        )


settings = Settings()

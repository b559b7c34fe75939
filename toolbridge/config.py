from functools import lru_cache
from typing import Optional, Tuple

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # --- Execution endpoint ---
    server_url: AnyHttpUrl = Field(default="http://localhost:8765", validation_alias="TOOL_SERVER_URL")
    request_timeout: float = Field(default=30.0, validation_alias="TOOL_REQUEST_TIMEOUT")
    connect_timeout: float = Field(default=5.0, validation_alias="TOOL_CONNECT_TIMEOUT")

    # Retries only apply to commands marked idempotent
    dispatch_retries: int = Field(default=2, ge=0, validation_alias="TOOL_DISPATCH_RETRIES")
    retry_backoff: str = Field(default="0.5,1,2", validation_alias="TOOL_RETRY_BACKOFF")

    # Dispatch gate on the declared parameter schema (off = discovery only)
    enforce_parameter_schema: bool = Field(default=False, validation_alias="TOOL_ENFORCE_PARAMETER_SCHEMA")

    # --- Persistence ---
    store_path: str = Field(default="data/tools.json", validation_alias="TOOL_STORE_PATH")

    # --- Logging ---
    log_dir: Optional[str] = Field(default="logs", validation_alias="TOOL_LOG_DIR")
    log_level: str = Field(default="INFO", validation_alias="TOOL_LOG_LEVEL")

    @property
    def execute_base_url(self) -> str:
        return str(self.server_url).rstrip("/")

    @property
    def backoff_seconds(self) -> Tuple[float, ...]:
        values = [part.strip() for part in self.retry_backoff.split(",") if part.strip()]
        return tuple(float(value) for value in values) or (0.0,)


@lru_cache
def get_settings() -> Settings:
    return Settings()

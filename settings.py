"""Runtime configuration for the mockup pipeline.

Values come from ``MOCKUP_*`` environment variables or a local ``.env``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MOCKUP_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Backend
    API_URL: str = Field(
        "http://localhost:3001",
        validation_alias=AliasChoices("MOCKUP_API_URL", "NEXT_PUBLIC_API_URL"),
    )
    API_TOKEN: Optional[str] = None
    HTTP_TIMEOUT: float = 30.0

    # Endpoints
    UPLOAD_PATH: str = "/api/printful/files/upload"
    CREATE_TASK_PATH: str = "/api/printful/mockup-generator/create-task/{product_id}"
    TASK_STATUS_PATH: str = "/api/printful/mockup-tasks/{task_key}"

    # Polling
    POLL_MAX_ATTEMPTS: int = 30
    POLL_DELAY_SECONDS: float = 2.0
    POLL_INITIAL_DELAY_SECONDS: float = 0.0

    # Compositing
    TEXT_FONT: str = "DejaVuSans.ttf"
    MERGE_FAILURE_POLICY: Literal["fallback", "raise"] = "fallback"

    ARTIFACTS_DIR: str = "artifacts"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def get_api_url() -> str:
    """Return the backend base URL without a trailing slash.

    Read fresh on every call so a changed environment is picked up per request.
    """
    return Settings().API_URL.rstrip("/")

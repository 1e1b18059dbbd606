import json
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load env values for components that read os.environ directly (e.g., LLM provider keys).
_package_root = Path(__file__).resolve().parent
_project_root = _package_root.parent
load_dotenv(_project_root / ".env", override=False)


def _coerce_json(value: str):
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"

    DATABASE_URL: str = "sqlite:///./funnel_builder.db"
    CLERK_JWT_ISSUER: str = ""
    CLERK_JWKS_URL: str = ""
    CLERK_AUDIENCE: list[str] = ["http://localhost:3000", "backend"]

    DB_POOL_SIZE: int = 20
    DB_POOL_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30

    BACKEND_CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    LLM_DEFAULT_MODEL: str = "claude-sonnet-4-20250514"
    LLM_IMAGE_MODEL: str = "dall-e-3"

    LANGFUSE_ENABLED: bool = False
    LANGFUSE_PUBLIC_KEY: str | None = None
    LANGFUSE_SECRET_KEY: str | None = None
    LANGFUSE_HOST: str = "https://cloud.langfuse.com"
    LANGFUSE_ENVIRONMENT: str | None = None
    LANGFUSE_RELEASE: str | None = None
    LANGFUSE_SAMPLE_RATE: float = 1.0
    LANGFUSE_REQUIRED: bool = False
    LANGFUSE_TIMEOUT_SECONDS: int = 20

    MEDIA_STORAGE_BUCKET: str | None = None
    MEDIA_STORAGE_ENDPOINT: str | None = None
    MEDIA_STORAGE_REGION: str = "us-east-1"
    MEDIA_STORAGE_ACCESS_KEY: str | None = None
    MEDIA_STORAGE_SECRET_KEY: str | None = None
    MEDIA_STORAGE_PREFIX: str = "dev"
    MEDIA_STORAGE_USE_SSL: bool = True
    MEDIA_STORAGE_FORCE_PATH_STYLE: bool = True
    # Slide images are embedded directly by viewers, so they are served from a public base URL.
    MEDIA_STORAGE_PUBLIC_BASE_URL: str | None = None

    PRESENTATION_LIMIT_PER_PROJECT: int = 10
    PRESENTATION_STREAM_TIMEOUT_SECONDS: int = 75 * 60
    PRESENTATION_HEARTBEAT_SECONDS: int = 20
    PRESENTATION_GENERATE_IMAGES: bool = True
    SLIDE_IMAGE_TIMEOUT_SECONDS: float = 90.0
    SLIDE_IMAGE_MAX_RETRIES: int = 2

    FUNNEL_CHAT_MAX_MESSAGE_LENGTH: int = 10000
    FUNNEL_CHAT_MAX_HISTORY: int = 50
    FUNNEL_CHAT_CONTEXT_WINDOW: int = 20

    SCRAPE_TIMEOUT_SECONDS: float = 15.0
    SCRAPE_MAX_RETRIES: int = 3

    RATE_LIMIT_ENABLED: bool = True

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def split_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("CLERK_AUDIENCE", mode="before")
    @classmethod
    def split_audience(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return [aud.strip() for aud in value.split(",") if aud.strip()]
        return value

    model_config = SettingsConfigDict(env_file=".env", env_json_loads=_coerce_json, extra="ignore")


settings = Settings()

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str
    database_ssl: bool = False

    # CORS
    cors_origins: str = "http://localhost:3000"

    # External collaborators (package/service catalog, user directory)
    catalog_base_url: str = "http://localhost:8001/api/v1"
    directory_base_url: str = "http://localhost:8002/api/v1"
    http_timeout_seconds: float = 5.0

    # Booking rules
    # Packages without maxSlotPerPeriod accept one booking per slot
    default_max_slot_per_period: int = 1
    # Re-evaluations after losing a race on the unique booking constraints
    booking_max_attempts: int = 5

    # Listing
    default_page_limit: int = 10
    max_page_limit: int = 100

    # Env
    env: str = "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()

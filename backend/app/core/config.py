from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent.parent  # backend/


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore")

    app_name: str = "BigCommerce Coupon Manager API"
    app_version: str = "0.1.0"
    environment: str = "local"

    bc_store_hash: str = ""
    bc_access_token: str = ""
    bc_api_base_url: str = "https://api.bigcommerce.com/stores"
    bc_page_size: int = 250
    bc_page_delay_seconds: float = 0.05
    bc_request_delay_seconds: float = 0.2
    bc_timeout_seconds: float = 30.0

    # Substrings of remote error text that mark a duplicate coupon code.
    duplicate_error_markers: list[str] = ["already exists", "conflict"]

    max_generate_quantity: int = 800
    export_dir: str = "exports"
    public_dir: str = str(BASE_DIR / "public")

    log_json: bool = False
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = False
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

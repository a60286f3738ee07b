from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from repo root if present
ENV_PATH = Path(__file__).resolve().parent / ".env"
if ENV_PATH.exists():
    load_dotenv(dotenv_path=ENV_PATH)


class Settings(BaseSettings):
    """Cart service settings (loaded from env).

    Defaults mirror a local development setup: a MongoDB on localhost and a
    throwaway JWT secret. Override them in `.env` or the environment.
    """

    # --- service ---
    service_name: str = Field(default="cart-service", description="Service name")
    version: str = Field(default="0.1.0", description="Service version")
    environment: str = Field(default="dev", description="Environment name (dev/staging/prod)")
    host: str = Field(default="0.0.0.0", description="API bind host")
    port: int = Field(default=8000, description="API bind port")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_format: str = Field(default="text", description="text|json")

    # --- MongoDB ---
    database_url: str = Field(default="mongodb://localhost:27017", description="MongoDB connection URL")
    database_name: str = Field(default="qkart", description="MongoDB database name")

    # --- Auth ---
    jwt_secret: str = Field(default="dev-secret-change", description="HS256 signing secret")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60 * 24 * 7, description="Token lifetime (7 days)")

    # --- Users & carts ---
    default_address: str = Field(
        default="ADDRESS_NOT_SET",
        description="Placeholder stored on new users until they set a shipping address",
    )
    default_wallet_money: float = Field(default=500, ge=0, description="Wallet balance for new users")
    default_payment_option: str = Field(default="PAYMENT_OPTION_DEFAULT")

    # --- CORS ---
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_methods: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_headers: List[str] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

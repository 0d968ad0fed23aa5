"""
Configuración de la aplicación
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List, Optional


class Settings(BaseSettings):
    # App
    APP_NAME: str = "COMANDA"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./comanda.db"

    # Security
    ADMIN_PASSWORD: str = ""  # vacío = /admin abierto (solo desarrollo)
    STAFF_PIN: str = ""  # fallback si no existe el setting "staff_pin"
    JWT_SECRET_KEY: str = "dev-secret-change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 720  # un turno

    # Restaurante
    RESTAURANT_TIMEZONE: str = "Europe/Rome"

    # Listados
    ORDERS_PAGE_SIZE: int = 100
    ORDERS_MAX_PAGE_SIZE: int = 500

    # Concurrencia
    OPTIMISTIC_RETRIES: int = 3

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    # Pagos (hosted checkout)
    PUBLIC_BASE_URL: str = "http://localhost:3000"
    PAYMENTS_API_URL: Optional[str] = None
    PAYMENTS_API_KEY: Optional[str] = None
    PAYMENTS_CURRENCY: str = "EUR"

    # Recibo fiscal
    FISCAL_API_URL: Optional[str] = None
    FISCAL_API_KEY: Optional[str] = None

    PROVIDER_TIMEOUT_SECONDS: float = 10.0

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=True
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()

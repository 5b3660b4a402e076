from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'stockbill_user'
    POSTGRES_PASSWORD: str = 'stockbill_pass'
    POSTGRES_DB: str = 'stockbill_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Override completo (ej. sqlite:// en pruebas)

    # JWT settings
    APP_SECRET_STRING: str = 'stockbill-dev-secret-change-me'
    ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Pagination
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # Invoicing
    INVOICE_NUMBER_PREFIX: str = 'INV-'
    INVOICE_NUMBER_PADDING: int = 5
    DEFAULT_TAX_RATE: int = 19  # Porcentaje (IVA general)

    # Reintentos internos ante conflictos de concurrencia en la base de datos
    TRANSACTION_CONFLICT_RETRIES: int = 1

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("TRANSACTION_CONFLICT_RETRIES")
    @classmethod
    def validate_retries(cls, v):
        if v < 0:
            raise ValueError("TRANSACTION_CONFLICT_RETRIES no puede ser negativo")
        return v

settings = Settings()

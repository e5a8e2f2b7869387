from typing import List, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application Information
    app_name: str = Field(default="Drip Course Platform")
    app_description: str = Field(
        default="Course delivery with drip-released day-numbered lessons"
    )
    app_version: str = Field(default="1.0.0")
    app_url: str = Field(default="http://localhost:8000")
    frontend_url: str = Field(default="http://localhost:3000")
    debug: bool = Field(default=True)
    production: bool = Field(default=False)

    # Database Configuration
    # A full URL wins over the individual parts (used for SQLite in tests/dev)
    database_url: Optional[str] = Field(default=None)
    db_host: str = Field(default="127.0.0.1")
    db_port: int = Field(default=5432)
    db_database: str = Field(default="drip-courses")
    db_username: str = Field(default="home")
    db_password: str = Field(default="123")
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)

    # Security Settings
    cors_allowed_origins: List[str] = Field(default=["http://localhost:3000"])

    # Identity provider JWT (the "sub" claim is the external user id)
    jwt_secret: str = Field(default="your-secret-key-change-in-production")
    jwt_algorithm: str = Field(default="HS256")
    jwt_issuer: Optional[str] = Field(default=None)
    jwt_audience: Optional[str] = Field(default=None)

    # Preview funnel token (signed by this service)
    preview_token_secret: Optional[str] = Field(default=None)
    preview_token_expiration_minutes: int = Field(default=60 * 24)

    # Drip schedule
    business_utc_offset_hours: int = Field(default=7)

    # Logging
    log_level: str = Field(default="info")
    log_file: str = Field(default="logs/app.log")

    # Pagination
    default_page_size: int = Field(default=20)
    max_page_size: int = Field(default=100)

    # Admin Defaults
    admin_default_external_id: str = Field(default="")
    admin_default_name: str = Field(default="Super Admin")
    admin_default_email: str = Field(default="admin@example.com")

    # Rate limiting ("memory://" or a redis:// URL)
    redis_url: str = Field(default="memory://")
    redis_rate_limit: str = Field(default="60/minute")
    preview_rate_limit: str = Field(default="20/minute")

    # ============================
    # Generic comma-separated parser
    # ============================
    @staticmethod
    def _parse_csv(value, default):
        if isinstance(value, str):
            items = [x.strip() for x in value.split(",") if x.strip()]
            return items if items else default
        if isinstance(value, list):
            return value
        return default

    @field_validator("cors_allowed_origins", mode="before")
    def validate_cors(cls, v):
        return cls._parse_csv(v, ["http://localhost:3000"])

    @field_validator("business_utc_offset_hours")
    def validate_offset(cls, v):
        if not -12 <= v <= 14:
            raise ValueError("business_utc_offset_hours must be between -12 and 14")
        return v

    @property
    def sqlalchemy_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return "postgresql+asyncpg://{user}:{password}@{host}:{port}/{database}".format(
            user=self.db_username,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_database,
        )

    @property
    def migration_database_url(self) -> str:
        """Synchronous URL for Alembic."""
        return self.sqlalchemy_database_url.replace(
            "postgresql+asyncpg", "postgresql+psycopg2"
        ).replace("sqlite+aiosqlite", "sqlite")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


def load_settings():
    try:
        settings = Settings()
        print("✅ Settings loaded successfully!")
        return settings
    except ValidationError as e:
        print("❌ Validation Error:", e)
        raise


settings = load_settings()

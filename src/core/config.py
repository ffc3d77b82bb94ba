from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("irf-automation", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Gemini (invoice extraction)
    gemini_api_key: str | None = Field(
        default=None, validation_alias=AliasChoices("GEMINI_API_KEY", "API_KEY")
    )
    gemini_model: str = Field("gemini-2.5-flash", alias="GEMINI_MODEL")
    gemini_temperature: float = Field(0.0, alias="GEMINI_TEMPERATURE")

    # Uploads
    max_upload_mb: float = Field(16.0, alias="MAX_UPLOAD_MB")
    allowed_invoice_extensions: str = Field(".pdf,.png,.jpg,.jpeg", alias="ALLOWED_INVOICE_EXTENSIONS")

    # Review sessions idle for longer than this are dropped (0 keeps them forever)
    session_ttl_minutes: float = Field(60.0, alias="SESSION_TTL_MINUTES")

    # Presentation of merged values (IRF template)
    short_date_format: str = Field("%d/%m/%Y", alias="SHORT_DATE_FORMAT")
    number_group_separator: str = Field(",", alias="NUMBER_GROUP_SEPARATOR")
    number_decimal_separator: str = Field(".", alias="NUMBER_DECIMAL_SEPARATOR")
    default_currency: str = Field("USD", alias="DEFAULT_CURRENCY")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "populate_by_name": True, "extra": "ignore"}

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_mb * 1024 * 1024)

    @property
    def invoice_extensions(self) -> set[str]:
        return {ext.strip().lower() for ext in self.allowed_invoice_extensions.split(",") if ext.strip()}

settings = Settings()

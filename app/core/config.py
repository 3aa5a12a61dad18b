from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "client-portal"

    # ---------------------------------------------------------------------
    # API contract / OpenAPI
    # ---------------------------------------------------------------------

    api_version: str = "1.0.0"
    api_description: str = (
        "Client portal deliverables API.\n\n"
        "Protected endpoints are headers-first. Required headers: "
        "X-Actor-User-Id, X-Role."
    )

    env: str = "local"
    debug: bool = True
    log_level: str = "INFO"

    db_host: str = "127.0.0.1"
    db_port: int = 5432
    db_name: str = "portal"
    db_user: str = "portal"
    db_password: str = "portal"

    # Full SQLAlchemy URL; takes precedence over the db_* parts when set.
    database_url_override: str | None = None

    # ---------------------------------------------------------------------
    # Object storage (S3 / MinIO)
    # ---------------------------------------------------------------------

    storage_bucket: str = "deliverables"
    storage_endpoint_url: str | None = None
    storage_public_base_url: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_region: str = "us-east-1"

    # ---------------------------------------------------------------------
    # Deliverable policy
    # ---------------------------------------------------------------------

    deliverable_max_file_mb: int = 10
    deliverable_allowed_types: list[str] = [
        "image/*",
        "application/pdf",
        "text/*",
        ".zip",
        ".rar",
    ]
    signed_url_ttl_seconds: int = 3600
    integrity_signed_url_ttl_seconds: int = 60

    download_rate_limit_attempts: int = 10
    download_rate_limit_window_seconds: int = 60

    bulk_download_delay_seconds: float = 0.5

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+psycopg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


settings = Settings()

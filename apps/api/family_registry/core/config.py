from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "dev"
    root_path: str = ""
    log_level: str = "INFO"

    postgres_db: str = "family_registry"
    postgres_user: str = "registry_user"
    postgres_password: str = "registry_pass"
    postgres_host: str = "db"
    postgres_port: int = 5432
    # Full SQLAlchemy URL; takes precedence over the postgres_* parts (sqlite in local runs).
    database_url_override: str = ""
    # Upper bound for a single store call (pool checkout and, on PostgreSQL, statement time).
    store_timeout_seconds: float = 5.0

    # Session tokens (HS256 JWT in the auth-token cookie or a Bearer header)
    session_secret: str = "change-me"
    session_algorithm: str = "HS256"
    session_ttl_days: int = 7
    session_cookie_name: str = "auth-token"

    # Membership policies
    allow_status_re_review: bool = False
    rejected_members_keep_family_code: bool = True

    # Documents
    max_document_bytes: int = 10 * 1024 * 1024

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


settings = Settings()

"""Global configuration — loaded from environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class SchemaLedgerSettings(BaseSettings):
    database_path: Path = Path(".schemaledger/app.db")
    branch: str = "development"  # database branch this process is connected to
    environment: str = "development"  # "development" or "production"
    migrations_dir: Path = Path("migrations")

    # Branch policy
    protected_branches: str = "main"  # Comma-separated branch names
    allow_adhoc_on_development: bool = True

    # Coordination lock
    lock_name: str = "schema_migrations"
    lock_timeout_seconds: float = 60.0
    lock_lease_seconds: float = 30.0
    lock_poll_interval: float = 0.5

    # Logging
    log_level: str = ""  # Empty = DEBUG in development, INFO elsewhere
    log_json: bool | None = None  # None = JSON outside development

    model_config = {"env_prefix": "SCHEMALEDGER_"}

    @property
    def is_dev(self) -> bool:
        return self.environment.lower() in ("dev", "development", "local")

    @property
    def protected_branch_list(self) -> list[str]:
        return [b.strip() for b in self.protected_branches.split(",") if b.strip()]

    @property
    def effective_log_level(self) -> str:
        if self.log_level:
            return self.log_level.upper()
        return "DEBUG" if self.is_dev else "INFO"

    @property
    def effective_log_json(self) -> bool:
        if self.log_json is not None:
            return self.log_json
        return not self.is_dev


settings = SchemaLedgerSettings()

"""
Centralized configuration using Pydantic Settings.

All environment variables are loaded and validated here. Routing values act as
the hard-coded fallback tier of the configuration provider.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Record store
    store_backend: str = "postgres"  # "postgres" or "memory"
    record_store_host: str = "record-store"
    record_store_port: int = 5432
    record_store_db: str = "crm"
    record_store_user: str = "crm_intake"
    record_store_password: str = ""

    # IMAP (mail fetch source)
    imap_host: str = "imap.gmail.com"
    imap_email: str = ""
    imap_password: str = ""
    imap_folder: str = "INBOX"

    # Shared intake mailbox that staff forward messages into
    intake_address: str = "crm@infogloballink.com"

    # Routing defaults
    fuzzy_match_threshold: float = 0.8
    context_match_threshold: float = 0.6
    context_match_accept_threshold: float = 0.7
    routing_methods: list[str] = ["pattern"]
    subject_tokens: list[str] = ["Re:", "Fwd:", "FW:", "RE:", "FWD:"]
    internal_domains: list[str] = ["infoglobaltech.com"]
    internal_addresses: list[str] = []

    # Processing
    batch_limit: int = 100
    max_tasks_per_message: int = 5
    deal_initial_stage: str = "New"
    deal_close_months: int = 6
    default_acting_user_id: str | None = None

    # Scheduler (fetch + process)
    scheduler_enabled: bool = False
    scheduler_interval_minutes: int = 5
    scheduler_fetch_days: int = 7

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @property
    def database_url(self) -> str:
        """PostgreSQL connection URL for the record store."""
        return (
            f"postgresql://{self.record_store_user}:{self.record_store_password}"
            f"@{self.record_store_host}:{self.record_store_port}/{self.record_store_db}"
        )


# Global settings instance
settings = Settings()

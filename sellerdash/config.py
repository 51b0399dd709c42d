"""
App configuration: all credentials from environment (no hardcoded secrets).

Load from .env via pydantic_settings. In production, set ENVIRONMENT=production
so required secrets are validated at startup.
"""
from pydantic import model_validator
from pydantic_settings import BaseSettings


def split_emails(raw: str) -> list[str]:
    """Parse a comma-separated e-mail list into lower-cased, non-empty entries."""
    return [e.strip().lower() for e in (raw or "").split(",") if e.strip()]


class Settings(BaseSettings):
    """Application settings from environment. No defaults for secrets in production."""

    environment: str = "development"  # development | production; production validates secrets

    # Spreadsheet service (service-account JSON inline or as a file path)
    google_service_account_key: str = ""
    google_service_account_file: str = ""
    master_spreadsheet_id: str = ""
    master_tab_name: str = "All Seller Information"

    # Subdomain routing
    root_domain: str = "localhost"

    # Hosted identity provider session tokens
    supabase_jwt_secret: str = ""
    supabase_jwt_audience: str = "authenticated"

    # Staff access
    team_emails: str = ""  # comma-separated
    master_user_emails: str = ""  # comma-separated; see every tenant account

    # SMTP for support tickets
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    ticket_from_email: str = ""
    ticket_recipients: str = ""  # comma-separated

    # Spreadsheet API throttling
    sheets_max_in_flight: int = 5
    sheets_retry_max_attempts: int = 5
    sheets_retry_base_delay: float = 1.0
    sheets_retry_max_delay: float = 32.0
    sheets_request_timeout: int = 30

    # In-memory caches
    tenant_cache_ttl_seconds: float = 300.0
    clients_cache_ttl_seconds: float = 120.0

    # Team bulk edits
    bulk_update_max_items: int = 50
    bulk_update_batch_size: int = 5
    bulk_update_batch_delay_ms: int = 100

    # Inbound rate limiting
    rate_limit_requests_per_minute_ip: int = 100
    rate_limit_requests_per_minute_user: int = 100

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def team_email_list(self) -> list[str]:
        return split_emails(self.team_emails)

    @property
    def master_user_email_list(self) -> list[str]:
        return split_emails(self.master_user_emails)

    @property
    def ticket_recipient_list(self) -> list[str]:
        return split_emails(self.ticket_recipients)

    @model_validator(mode="after")
    def validate_production_secrets(self):
        """Fail fast in production if required credentials are missing."""
        if self.environment != "production":
            return self
        if not (self.google_service_account_key or self.google_service_account_file):
            raise ValueError(
                "In production, GOOGLE_SERVICE_ACCOUNT_KEY or GOOGLE_SERVICE_ACCOUNT_FILE must be set"
            )
        if not self.master_spreadsheet_id:
            raise ValueError("In production, MASTER_SPREADSHEET_ID must be set")
        if not self.supabase_jwt_secret:
            raise ValueError("In production, SUPABASE_JWT_SECRET must be set")
        if self.smtp_user and not self.smtp_password:
            raise ValueError(
                "In production, SMTP_PASSWORD must be set when SMTP_USER is set"
            )
        return self


settings = Settings()

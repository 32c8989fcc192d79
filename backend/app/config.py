"""Configuration settings for the jobflow backend."""

from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings

from jobflow.config import WorkflowConfig


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Supabase
    supabase_url: str
    # New key system (preferred)
    supabase_secret_key: str | None = None  # Backend/admin access
    # Legacy key (deprecated)
    supabase_service_role_key: str | None = None

    # JWT
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24  # 1 day

    # Stripe
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None

    # Workflow
    transition_policy: str = "single_step"
    gst_rate: Decimal = Decimal("0.10")
    currency: str = "aud"
    app_base_url: str = ""
    max_notification_attempts: int = 5
    require_payout_account: bool = True

    # App
    debug: bool = False
    log_level: str = "INFO"
    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model

    def workflow_config(self) -> WorkflowConfig:
        """Engine settings derived from this environment."""
        return WorkflowConfig(
            transition_policy=self.transition_policy,
            gst_rate=self.gst_rate,
            currency=self.currency,
            app_base_url=self.app_base_url,
            max_notification_attempts=self.max_notification_attempts,
            require_payout_account=self.require_payout_account,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

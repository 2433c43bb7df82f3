"""
coachbill Application Configuration
====================================

PURPOSE:
    Pydantic-Settings based configuration for the coachbill backend.
    All settings can be overridden via environment variables (COACHBILL_ prefix).

    Stripe credentials are held per environment (test / live). Nothing in
    here selects a "current" environment: every billing operation receives
    the environment explicitly and picks its own key pair.
"""

import logging
from typing import List, Optional

from pydantic_settings import BaseSettings

from app.models.enums import Environment

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Process-wide settings, loaded once at import."""

    app_name: str = "coachbill"
    debug: bool = False

    # Actor resolution (X-User-Id). Disabling is only honoured in debug mode.
    auth_enabled: bool = True

    # Stripe API keys, one pair per environment
    stripe_secret_key_test: Optional[str] = None
    stripe_secret_key_live: Optional[str] = None

    # Webhook signing secrets; the endpoint accepts events signed with either
    stripe_webhook_secret_test: Optional[str] = None
    stripe_webhook_secret_live: Optional[str] = None

    # Stripe Connect OAuth client ids
    stripe_connect_client_id_test: Optional[str] = None
    stripe_connect_client_id_live: Optional[str] = None

    # Hard ceiling on every processor call (seconds)
    stripe_timeout_s: float = 20.0

    # A held charge lock older than this is reported as "outcome unknown"
    charge_lock_ttl_s: int = 120

    # Service-type labels a coach may log; each must exist as a product name
    # in the tenant's Stripe catalog for the session to be chargeable.
    service_types: List[str] = ["Full", "Half"]

    # Public base URL used for redirect / return URLs
    public_app_url: str = "http://localhost:3000"

    data_directory: str = "/data"
    log_dir: str = "logs"

    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    class Config:
        env_file = ".env"
        env_prefix = "COACHBILL_"

    def stripe_secret_key(self, env: Environment) -> Optional[str]:
        """Return the secret key for *env*, or None when it is not configured."""
        if env is Environment.LIVE:
            return self.stripe_secret_key_live
        return self.stripe_secret_key_test

    def stripe_connect_client_id(self, env: Environment) -> Optional[str]:
        if env is Environment.LIVE:
            return self.stripe_connect_client_id_live
        return self.stripe_connect_client_id_test

    def webhook_secrets(self) -> List[tuple]:
        """Configured (environment, secret) pairs, test first."""
        pairs = []
        if self.stripe_webhook_secret_test:
            pairs.append((Environment.TEST, self.stripe_webhook_secret_test))
        if self.stripe_webhook_secret_live:
            pairs.append((Environment.LIVE, self.stripe_webhook_secret_live))
        return pairs


settings = Settings()

if not settings.stripe_secret_key_test and not settings.stripe_secret_key_live:
    logger.warning(
        "No Stripe secret keys configured. Set COACHBILL_STRIPE_SECRET_KEY_TEST "
        "and/or COACHBILL_STRIPE_SECRET_KEY_LIVE to enable billing."
    )

# news_monitor/config.py
"""
Environment-sourced configuration.

Values are read from the process environment (populated from .env by
python-dotenv in main.py). Settings are re-read per request so a missing
value only fails the branch that needs it.
"""
from __future__ import annotations

import os
from dataclasses import dataclass


DEFAULT_SYSTEM_TOKEN_ISSUER = "supabase"


class ConfigError(Exception):
    """Raised when a required setting is missing (maps to a 500 response)."""


@dataclass(frozen=True)
class Settings:
    webhook_url_production: str | None = None
    webhook_url_test: str | None = None
    teams_webhook_url_production: str | None = None
    teams_webhook_url_test: str | None = None
    token_signing_secret: str | None = None
    app_password_hash: str | None = None
    system_token_issuer: str = DEFAULT_SYSTEM_TOKEN_ISSUER

    @classmethod
    def from_env(cls) -> "Settings":
        def get(name: str) -> str | None:
            value = os.environ.get(name, "").strip()
            return value or None

        return cls(
            webhook_url_production=get("WEBHOOK_URL_PRODUCTION"),
            webhook_url_test=get("WEBHOOK_URL_TEST"),
            teams_webhook_url_production=get("TEAMS_WEBHOOK_URL_PRODUCTION"),
            teams_webhook_url_test=get("TEAMS_WEBHOOK_URL_TEST"),
            token_signing_secret=get("TOKEN_SIGNING_SECRET"),
            app_password_hash=get("APP_PASSWORD_HASH"),
            system_token_issuer=get("SYSTEM_TOKEN_ISSUER") or DEFAULT_SYSTEM_TOKEN_ISSUER,
        )

    def webhook_url(self, mode: str) -> str:
        """Primary webhook for 'production' or 'test'. Raises ConfigError if unset."""
        url = self.webhook_url_test if mode == "test" else self.webhook_url_production
        if not url:
            raise ConfigError(f"webhook URL for mode '{mode}' is not configured")
        return url

    def teams_webhook_url(self, mode: str) -> str | None:
        # Optional: an unset Teams URL disables the secondary notification
        return self.teams_webhook_url_test if mode == "test" else self.teams_webhook_url_production

    def signing_secret(self) -> str:
        if not self.token_signing_secret:
            raise ConfigError("TOKEN_SIGNING_SECRET is not configured")
        return self.token_signing_secret

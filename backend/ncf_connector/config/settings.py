"""
Runtime configuration for the connector.

All values come from environment variables so the same build runs in
development, CI and production. Settings are read once per process and
cached; tests call reset_settings() after changing the environment.

Usage:
    from ncf_connector.config.settings import get_settings

    settings = get_settings()
    url = f"{settings.ncf_manager_url}/api/shop/plan"
"""

import os
import logging
from dataclasses import dataclass
from threading import Lock
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_NCF_MANAGER_URL = "https://ncf.curetcore.com"
DEFAULT_APP_URL = "http://localhost:8000"
DEFAULT_NCF_MANAGER_TIMEOUT_SECONDS = 10.0

# The single paid plan offered through Shopify Billing
DEFAULT_PRO_PLAN_NAME = "NCF Manager Pro"
DEFAULT_PRO_PLAN_PRICE = 9.0
DEFAULT_PRO_PLAN_CURRENCY = "USD"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Invalid numeric environment value, using default", extra={
            "variable": name,
            "default": default
        })
        return default


@dataclass(frozen=True)
class ConnectorSettings:
    """Immutable snapshot of the connector configuration."""
    environment: str
    ncf_manager_url: str
    app_url: str
    shopify_api_key: Optional[str]
    shopify_api_secret: Optional[str]
    billing_test_mode: bool
    ncf_manager_timeout_seconds: float
    pro_plan_name: str
    pro_plan_price: float
    pro_plan_currency: str

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def billing_return_url(self) -> str:
        """URL Shopify redirects to after the merchant approves or declines."""
        return f"{self.app_url}/app/billing/callback"

    @classmethod
    def from_env(cls) -> "ConnectorSettings":
        environment = os.getenv("ENV", "development").lower()
        return cls(
            environment=environment,
            ncf_manager_url=(os.getenv("NCF_MANAGER_URL") or DEFAULT_NCF_MANAGER_URL).rstrip("/"),
            app_url=(os.getenv("SHOPIFY_APP_URL") or DEFAULT_APP_URL).rstrip("/"),
            shopify_api_key=os.getenv("SHOPIFY_API_KEY"),
            shopify_api_secret=os.getenv("SHOPIFY_API_SECRET"),
            # Test charges everywhere except production, unless forced on
            billing_test_mode=_env_bool("SHOPIFY_BILLING_TEST_MODE") or environment != "production",
            ncf_manager_timeout_seconds=_env_float(
                "NCF_MANAGER_TIMEOUT_SECONDS", DEFAULT_NCF_MANAGER_TIMEOUT_SECONDS
            ),
            pro_plan_name=os.getenv("PRO_PLAN_NAME", DEFAULT_PRO_PLAN_NAME),
            pro_plan_price=_env_float("PRO_PLAN_PRICE", DEFAULT_PRO_PLAN_PRICE),
            pro_plan_currency=os.getenv("PRO_PLAN_CURRENCY", DEFAULT_PRO_PLAN_CURRENCY),
        )


_settings: Optional[ConnectorSettings] = None
_lock = Lock()


def get_settings() -> ConnectorSettings:
    """Get the process-wide settings, loading them from the environment once."""
    global _settings
    if _settings is None:
        with _lock:
            if _settings is None:
                _settings = ConnectorSettings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next get_settings() re-reads the environment."""
    global _settings
    with _lock:
        _settings = None

"""
storefront.config

Injected configuration for the storefront core.

Services never read os.environ. Settings are loaded once by
templatestore.settings (python-dotenv + env vars) and turned into an immutable
StorefrontConfig here; views build it per request with get_config() so
override_settings works in tests.

Startup validation: storefront.apps registers check_config() as a Django
system check, so `runserver`, `migrate` and `test` refuse to start when Stripe
credentials are missing.

========= CHANGE LOG =========
2025-09-02 • ADD: StorefrontConfig dataclass + system check (storefront.E001/E002).
2025-09-14 • ADD: stripe_timeout / stripe_read_retries / revoke_on_refund / alert_on_order_miss.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from django.conf import settings
from django.core import checks

SUPPORTED_CURRENCIES = ("usd", "eur", "gbp", "cad")


@dataclass(frozen=True)
class StorefrontConfig:
    stripe_secret_key: str
    stripe_webhook_secret: str
    success_url: str
    cancel_url: str
    currency: str = "usd"
    stripe_timeout: float = 10.0
    stripe_read_retries: int = 2
    owner_email: str = ""
    revoke_on_refund: bool = False
    alert_on_order_miss: bool = False
    checkout_rate_limit_per_min: int = 20

    def missing(self) -> List[str]:
        out = []
        if not self.stripe_secret_key:
            out.append("STRIPE_SECRET_KEY")
        if not self.stripe_webhook_secret:
            out.append("STRIPE_WEBHOOK_SECRET")
        return out

    def validate(self) -> "StorefrontConfig":
        missing = self.missing()
        if missing:
            raise RuntimeError(f"Missing required storefront settings: {', '.join(missing)}")
        if self.currency not in SUPPORTED_CURRENCIES:
            raise RuntimeError(f"Unsupported STOREFRONT_CURRENCY={self.currency!r}")
        return self


def _setting(name: str, default=None):
    val = getattr(settings, name, default)
    return default if val in (None, "") else val


def get_config() -> StorefrontConfig:
    return StorefrontConfig(
        stripe_secret_key=(_setting("STRIPE_SECRET_KEY", "") or "").strip(),
        stripe_webhook_secret=(_setting("STRIPE_WEBHOOK_SECRET", "") or "").strip(),
        success_url=_setting("STOREFRONT_SUCCESS_URL", ""),
        cancel_url=_setting("STOREFRONT_CANCEL_URL", ""),
        currency=str(_setting("STOREFRONT_CURRENCY", "usd")).lower(),
        stripe_timeout=float(_setting("STOREFRONT_STRIPE_TIMEOUT", 10.0)),
        stripe_read_retries=max(0, int(_setting("STOREFRONT_STRIPE_READ_RETRIES", 2))),
        owner_email=_setting("STOREFRONT_OWNER_EMAIL", ""),
        revoke_on_refund=bool(_setting("STOREFRONT_REVOKE_ON_REFUND", False)),
        alert_on_order_miss=bool(_setting("STOREFRONT_ALERT_ON_ORDER_MISS", False)),
        checkout_rate_limit_per_min=max(1, int(_setting("STOREFRONT_CHECKOUT_RATE_LIMIT_PER_MIN", 20))),
    )


def check_config(app_configs: Optional[list] = None, **kwargs) -> list:
    cfg = get_config()
    errors = []
    for name in cfg.missing():
        errors.append(
            checks.Error(
                f"{name} is not set.",
                hint=f"Add {name} to the environment or .env file.",
                id="storefront.E001",
            )
        )
    if cfg.currency not in SUPPORTED_CURRENCIES:
        errors.append(
            checks.Error(
                f"STOREFRONT_CURRENCY={cfg.currency!r} is not supported.",
                hint=f"Use one of: {', '.join(SUPPORTED_CURRENCIES)}",
                id="storefront.E002",
            )
        )
    return errors

"""Environment-driven settings for beadshop."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .models import Address

# Local data directory within the beadshop project
DEFAULT_DATA_DIR = Path(__file__).parent.parent.parent / "data"


def _default_origin() -> Address:
    return Address(
        name=os.getenv("SHIPPO_SENDER_NAME", "Butterflies Beading"),
        street1=os.getenv("SHIPPO_SENDER_STREET", "123 Artisan Way"),
        city=os.getenv("SHIPPO_SENDER_CITY", "Craftsville"),
        state=os.getenv("SHIPPO_SENDER_STATE", "NY"),
        zip=os.getenv("SHIPPO_SENDER_ZIP", "10001"),
        country=os.getenv("SHIPPO_SENDER_COUNTRY", "US"),
        phone=os.getenv("SHIPPO_SENDER_PHONE", "555-123-4567"),
        email=os.getenv("SHIPPO_SENDER_EMAIL", "orders@butterfliesbeading.com"),
    )


@dataclass
class Settings:
    """Runtime configuration. Use Settings.from_env() outside of tests."""

    data_dir: Path = DEFAULT_DATA_DIR
    base_url: str = "http://localhost:3000"
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    shippo_api_key: str = ""
    origin_address: Address = field(default_factory=_default_origin)
    free_shipping_threshold: float = 100.0
    jwt_secret: str = "change-me"
    auth_jwt_key: str = "change-me"
    auth_jwt_algorithm: str = "HS256"
    resend_api_key: str = ""
    email_from: str = "Butterflies Beading <orders@butterfliesbeading.com>"
    business_email: str = "hello@butterfliesbeading.com"
    payment_token_ttl_hours: int = 24
    payment_link_ttl_days: int = 7
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: str | None = None) -> "Settings":
        """Load settings from the process environment and an optional .env file."""
        load_dotenv(env_file)
        return cls(
            data_dir=Path(os.getenv("BEADSHOP_DATA_DIR", str(DEFAULT_DATA_DIR))),
            base_url=os.getenv("BASE_URL", "http://localhost:3000").rstrip("/"),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
            shippo_api_key=os.getenv("SHIPPO_API_KEY", ""),
            origin_address=_default_origin(),
            free_shipping_threshold=float(os.getenv("FREE_SHIPPING_THRESHOLD", "100")),
            jwt_secret=os.getenv("JWT_SECRET", "change-me"),
            auth_jwt_key=os.getenv("AUTH_JWT_KEY", os.getenv("JWT_SECRET", "change-me")),
            auth_jwt_algorithm=os.getenv("AUTH_JWT_ALGORITHM", "HS256"),
            resend_api_key=os.getenv("RESEND_API_KEY", ""),
            email_from=os.getenv(
                "EMAIL_FROM", "Butterflies Beading <orders@butterfliesbeading.com>"
            ),
            business_email=os.getenv("BUSINESS_EMAIL", "hello@butterfliesbeading.com"),
            payment_token_ttl_hours=int(os.getenv("PAYMENT_TOKEN_TTL_HOURS", "24")),
            payment_link_ttl_days=int(os.getenv("PAYMENT_LINK_TTL_DAYS", "7")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

"""
Configuration settings for PAYBRIDGE
Handles environment variables and application settings
"""
from typing import Optional, List
from pydantic_settings import BaseSettings
from pydantic import field_validator


PAYPAL_API_BASES = {
    "sandbox": "https://api-m.sandbox.paypal.com",
    "live": "https://api-m.paypal.com",
}


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "PAYBRIDGE"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    PORT: int = 4242
    LOG_LEVEL: str = "INFO"

    # Externally reachable base URL used to build provider redirect targets
    BASE_URL: str = "http://localhost:4242"

    # Order store
    DATABASE_URL: str = "sqlite:///./paybridge.db"

    # Stripe (CardDirect)
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_API_VERSION: str = "2025-07-30.basil"

    # PayPal (RedirectWallet)
    PAYPAL_CLIENT_ID: Optional[str] = None
    PAYPAL_CLIENT_SECRET: Optional[str] = None
    PAYPAL_ENVIRONMENT: str = "sandbox"

    # NICEPay (GatewayRegistration). Defaults are the public sandbox merchant.
    NICEPAY_MERCHANT_ID: str = "IONPAYTEST"
    NICEPAY_MERCHANT_KEY: Optional[str] = (
        "33F49GnCMS1mFYlGXisbUDzVf2ATWCl9k3R++d5hDd3Frmuos/XLx8XhXpe+LDYAbpGKZYSwtlyyLOtS/8aD7A=="
    )
    NICEPAY_BASE_URL: str = "https://dev.nicepay.co.id"

    # Outbound provider calls
    PROVIDER_TIMEOUT_SECONDS: float = 3.0

    # Mobile hand-off
    DEEP_LINK_BASE: str = "aitravel://app/booking_submitted"

    # CORS
    ALLOWED_ORIGINS: List[str] = ["*"]

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("PAYPAL_ENVIRONMENT")
    @classmethod
    def check_paypal_environment(cls, v):
        v = v.lower()
        if v not in PAYPAL_API_BASES:
            raise ValueError("PAYPAL_ENVIRONMENT must be 'sandbox' or 'live'")
        return v

    @field_validator("BASE_URL", "NICEPAY_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")

    @property
    def paypal_api_base(self) -> str:
        return PAYPAL_API_BASES[self.PAYPAL_ENVIRONMENT]

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env file


# Create settings instance
settings = Settings()


# Environment-specific overrides
if settings.ENVIRONMENT == "development":
    settings.DEBUG = True


# Validation
def validate_settings(config: Optional[Settings] = None):
    """Validate critical settings"""
    config = config or settings
    issues = []

    if not config.BASE_URL.startswith("https://"):
        issues.append("BASE_URL must be an https URL reachable by the providers")
    if config.PAYPAL_ENVIRONMENT != "live":
        issues.append("PAYPAL_ENVIRONMENT must be 'live' in production")
    if not config.STRIPE_SECRET_KEY:
        issues.append("STRIPE_SECRET_KEY must be set")
    if not config.PAYPAL_CLIENT_ID or not config.PAYPAL_CLIENT_SECRET:
        issues.append("PAYPAL_CLIENT_ID and PAYPAL_CLIENT_SECRET must be set")
    if config.NICEPAY_MERCHANT_ID == "IONPAYTEST":
        issues.append("NICEPAY_MERCHANT_ID is still the sandbox merchant")

    if issues:
        raise ValueError(f"Configuration issues: {', '.join(issues)}")


# Auto-validate on import in production
if settings.ENVIRONMENT == "production":
    validate_settings()

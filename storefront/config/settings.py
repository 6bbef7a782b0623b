"""
Configuration settings for the storefront backend
Handles environment variables and application settings
"""
from typing import Optional, List
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "storefront"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Database
    DATABASE_URL: str = "sqlite:///./storefront.db"

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]

    # Cart
    CART_MAX_QUANTITY: int = 2_147_483_647
    DEFAULT_CART_ID: str = "default"

    # PayPal (Orders API v2)
    PAYPAL_API_BASE: str = "https://api-m.sandbox.paypal.com"
    PAYPAL_ACCESS_TOKEN: Optional[str] = None
    PAYPAL_RETURN_URL: str = "http://localhost:8000/paypal/return"
    PAYPAL_CANCEL_URL: str = "http://localhost:8000/paypal/cancel"
    PAYPAL_DEFAULT_CURRENCY: str = "USD"

    # M-Pesa (Daraja STK push)
    MPESA_API_BASE: str = "https://sandbox.safaricom.co.ke"
    MPESA_ACCESS_TOKEN: Optional[str] = None
    MPESA_SHORTCODE: str = "174379"
    MPESA_PASSKEY: Optional[str] = None
    MPESA_CALLBACK_URL: str = "http://localhost:8000/mpesa/callback"
    MPESA_TRANSACTION_TYPE: str = "CustomerPayBillOnline"
    MPESA_ACCOUNT_REFERENCE: str = "payment"
    MPESA_TRANSACTION_DESC: str = "Storefront order"

    # Gateway transport
    GATEWAY_TIMEOUT_SECONDS: float = 15.0
    GATEWAY_MAX_ATTEMPTS: int = 3
    GATEWAY_BACKOFF_SECONDS: float = 0.5
    GATEWAY_BACKOFF_MULTIPLIER: float = 2.0
    GATEWAY_BACKOFF_MAX_SECONDS: float = 4.0

    # Payment orchestration
    PAYMENT_INTENT_TIMEOUT_SECONDS: int = 300
    EXPIRED_GRACE_SECONDS: int = 600  # 0 rejects every callback after expiry
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 30

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env file


# Create settings instance
settings = Settings()


def validate_settings(current: Optional[Settings] = None):
    """Validate critical settings"""
    current = current or settings
    issues = []

    if current.ENVIRONMENT == "production":
        if not current.PAYPAL_ACCESS_TOKEN:
            issues.append("PAYPAL_ACCESS_TOKEN must be set for PayPal checkout")
        if not current.MPESA_ACCESS_TOKEN or not current.MPESA_PASSKEY:
            issues.append("MPESA_ACCESS_TOKEN and MPESA_PASSKEY must be set for M-Pesa checkout")
        if current.DATABASE_URL.startswith("sqlite"):
            issues.append("DATABASE_URL must point at a managed database in production")

    if current.GATEWAY_MAX_ATTEMPTS < 1:
        issues.append("GATEWAY_MAX_ATTEMPTS must be at least 1")

    if issues:
        raise ValueError(f"Configuration issues: {', '.join(issues)}")


# Auto-validate on import in production
if settings.ENVIRONMENT == "production":
    validate_settings()

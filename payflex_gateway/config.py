"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./payflex.db"

    # Service
    service_name: str = "payflex-gateway"
    log_level: str = "INFO"

    # HTTP Client
    http_timeout_seconds: float = 5.0

    # External risk vendor (FraudLabs-style order verification)
    risk_vendor_url: str = "https://api.fraudlabspro.com/v1/order/verify"
    risk_vendor_api_key: str | None = None
    risk_vendor_max_retries: int = 2
    risk_vendor_backoff_seconds: float = 0.5

    # Mobile money gateway (GSMA-style)
    mobile_money_base_url: str = "http://localhost:8003"
    mobile_money_api_key: str | None = None
    mobile_money_username: str | None = None
    mobile_money_provider: str = "ORANGE"
    provider_max_retries: int = 2
    provider_backoff_seconds: float = 1.0  # Linear backoff step in seconds

    # Payments
    currency: str = "BWP"
    canonical_identity_prefix: str = "did:bw:"
    default_network_address: str = "197.234.56.78"

    # Fraud gating
    fraud_internal_weight: float = 0.7
    fraud_external_weight: float = 0.3
    fraud_block_threshold: int = 80
    fraud_default_internal_score: int = 50
    fraud_nominal_amount: int = 100

    # USSD gateway
    ussd_max_response_bytes: int = 182


settings = Settings()

"""Configuration management using Pydantic Settings"""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./peer_trust.db"

    # External Services
    profile_api_base: str = "http://localhost:8001"
    validator_api_base: str = "http://localhost:8002"
    executor_api_base: str = "http://localhost:8003"

    # Service
    service_name: str = "peer-trust-gateway"
    log_level: str = "INFO"

    # HTTP Client
    http_timeout_seconds: float = 5.0
    executor_timeout_seconds: float = 30.0

    # Resilience
    retry_attempts: int = 3
    retry_delay_seconds: float = 2.0
    circuit_breaker_threshold: int = 5
    circuit_breaker_cooldown_seconds: float = 60.0
    rate_limit_requests: int = 30
    rate_limit_window_seconds: float = 60.0

    # Transfer limits
    min_transfer_amount: float = 5.0
    max_transfer_amount: float = 5000.0
    customer_daily_limit: float = 5000.0
    customer_monthly_limit: float = 50000.0

    # Risk management
    max_transfers_per_hour: int = 15
    suspicious_patterns: List[str] = ["test@", "fake.com", "spam"]
    risk_threshold_high: float = 80.0  # above this: blocked
    risk_threshold_medium: float = 60.0  # at or above this: manual review
    geo_restrictions_enabled: bool = False
    allowed_countries: List[str] = ["US", "CA", "GB", "AU", "DE", "FR"]
    blocked_countries: List[str] = ["KP", "IR", "CU", "SY"]

    # Peer network
    vip_min_tier: int = 3
    candidate_pool_size: int = 50
    max_peer_matches: int = 10
    max_group_matches: int = 5


settings = Settings()

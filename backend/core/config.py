"""
Application configuration using Pydantic Settings.
"""
from functools import lru_cache
from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Market Farmer"
    debug: bool = False
    environment: str = "development"

    # Server (read-only report API)
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Run mode
    dry_run: bool = True
    data_dir: str = "data"
    estimator: Optional[str] = None  # "package.module:factory"

    # Manifold (pooled-liquidity venue)
    manifold_api_key: Optional[str] = None
    manifold_api_base: str = "https://api.manifold.markets/v0"
    manifold_requests_per_minute: int = Field(default=450, gt=0)

    # Polymarket (order-book venue)
    gamma_api_base: str = "https://gamma-api.polymarket.com"
    clob_api_base: str = "https://clob.polymarket.com"
    polygon_rpc_url: str = "https://polygon-rpc.com"
    ctf_address: str = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"
    poly_chain_id: int = 137
    poly_private_key: Optional[str] = None
    poly_funder_address: Optional[str] = None
    poly_signature_type: int = 0
    poly_api_key: Optional[str] = None
    poly_api_secret: Optional[str] = None
    poly_api_passphrase: Optional[str] = None

    # Decision policy
    edge_threshold: float = Field(default=0.10, ge=0.0, le=1.0)
    kelly_fraction: float = Field(default=0.25, gt=0.0, le=1.0)
    max_position_pct: float = Field(default=0.20, gt=0.0, le=1.0)
    max_bet_amount: float = Field(default=50, gt=0)
    poly_max_bet_amount: float = Field(default=10, gt=0)
    max_impact_pct: float = Field(default=0.10, gt=0.0, le=1.0)
    slippage_max_rounds: int = Field(default=8, ge=1)

    # Eligibility
    min_liquidity: float = Field(default=100, ge=0)
    min_bettors: int = Field(default=1, ge=0)
    min_hours_to_close: float = Field(default=1.0, ge=0)
    max_days_to_close: float = Field(default=90.0, gt=0)
    fast_window_days: float = Field(default=7.0, ge=0)
    max_markets_per_run: int = Field(default=20, ge=1)
    poly_max_markets_per_run: int = Field(default=10, ge=1)
    poly_min_liquidity: float = Field(default=1000, ge=0)
    poly_min_volume_24h: float = Field(default=1000, ge=0)
    poly_max_days_to_close: float = Field(default=7.0, gt=0)

    # Calibration feedback
    recent_window: int = Field(default=20, ge=1)
    min_resolutions_for_feedback: int = Field(default=10, ge=0)
    min_bucket_count: int = Field(default=3, ge=1)

    # Transport
    http_timeout_seconds: float = Field(default=30.0, gt=0)
    retry_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

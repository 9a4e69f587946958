from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = Field(default="dev", alias="APP_ENV")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    internal_api_token: str = Field(
        default="dev_internal_token_change_me",
        alias="INTERNAL_API_TOKEN",
    )
    internal_api_allowlist: str = Field(
        default="127.0.0.1/32,::1/128",
        alias="INTERNAL_API_ALLOWLIST",
    )
    internal_api_trusted_proxies: str = Field(default="", alias="INTERNAL_API_TRUSTED_PROXIES")

    database_url: str = Field(alias="DATABASE_URL")
    redis_url: str = Field(alias="REDIS_URL")

    celery_broker_url: str = Field(alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(alias="CELERY_RESULT_BACKEND")

    pos_rate_limit_per_window: int = Field(default=100, alias="POS_RATE_LIMIT_PER_WINDOW")
    pos_rate_limit_window_seconds: int = Field(default=60, alias="POS_RATE_LIMIT_WINDOW_SECONDS")

    wallet_provisioning_base_url: str = Field(
        default="http://localhost:8100",
        alias="WALLET_PROVISIONING_BASE_URL",
    )
    wallet_provisioning_api_key: str = Field(default="", alias="WALLET_PROVISIONING_API_KEY")
    wallet_provisioning_timeout_seconds: float = Field(
        default=10.0,
        alias="WALLET_PROVISIONING_TIMEOUT_SECONDS",
    )

    claim_base_url: str = Field(default="http://localhost:8000/claim", alias="CLAIM_BASE_URL")
    claim_code_length: int = Field(default=10, alias="CLAIM_CODE_LENGTH")
    claim_code_ttl_days: int = Field(default=90, alias="CLAIM_CODE_TTL_DAYS")

    campaign_budget_override_phrase: str = Field(
        default="CONFIRM OVER BUDGET",
        alias="CAMPAIGN_BUDGET_OVERRIDE_PHRASE",
    )
    campaign_near_budget_ratio: float = Field(default=0.8, alias="CAMPAIGN_NEAR_BUDGET_RATIO")

    idempotency_retention_days: int = Field(default=30, alias="IDEMPOTENCY_RETENTION_DAYS")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

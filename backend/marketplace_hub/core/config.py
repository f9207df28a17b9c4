# 环境变量和配置
# pydantic‑settings 读取 .env = core/config.py

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# 本机直接跑 uvicorn/celery 时（不走 Docker），才会用到 model_config.env_file=".env"

class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",
        case_sensitive=False,
    )

    # ========= project config =========
    PROJECT_NAME: str = "Marketplace Hub"
    ENVIRONMENT: str = "dev"
    API_PREFIX: str = "/api/v1"
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"
    LOG_LEVEL: str = Field("INFO", alias="LOG_LEVEL")
    LOG_QUIET_LOGGERS: str = Field("urllib3,kombu,celery.worker.strategy", alias="LOG_QUIET_LOGGERS")   # 逗号分隔，压到 WARNING


    # ========= Database =========
    DATABASE_URL: str = Field(
        default="postgresql+psycopg://hub_user:hub_pass@db:5432/marketplace_hub",
        alias="DATABASE_URL",
    )
    DB_POOL_SIZE: int = Field(10, ge=1, alias="DB_POOL_SIZE")
    DB_MAX_OVERFLOW: int = Field(20, ge=0, alias="DB_MAX_OVERFLOW")


    # ========= celery config =========
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None
    CELERY_TIMEZONE: str = "America/Sao_Paulo"
    SYNC_TASKS_INLINE: bool = Field(default=False, alias="SYNC_TASKS_INLINE")

    ORDER_POLL_INTERVAL_SEC: int = Field(60 * 60, ge=60, alias="ORDER_POLL_INTERVAL_SEC")             # 订单轮询窗口：1 小时
    STOCK_SYNC_INTERVAL_SEC: int = Field(6 * 60 * 60, ge=60, alias="STOCK_SYNC_INTERVAL_SEC")
    CATALOG_SYNC_INTERVAL_SEC: int = Field(12 * 60 * 60, ge=60, alias="CATALOG_SYNC_INTERVAL_SEC")
    CREDENTIAL_SWEEP_INTERVAL_SEC: int = Field(120, ge=10, alias="CREDENTIAL_SWEEP_INTERVAL_SEC")     # 每 2 分钟清理失效 token


    # ========= Hub (Aggregator) Base Config =========
    HUB_BASE_URL: str = Field("https://rest.hub2b.com.br", alias="HUB_BASE_URL")
    HUB_CLIENT_ID: Optional[str] = Field(None, alias="HUB_CLIENT_ID")
    HUB_CLIENT_SECRET: Optional[str] = Field(None, alias="HUB_CLIENT_SECRET")
    HUB_USERNAME: Optional[str] = Field(None, alias="HUB_USERNAME")
    HUB_PASSWORD: Optional[str] = Field(None, alias="HUB_PASSWORD")
    HUB_TENANT_ID: str = Field("", alias="HUB_TENANT_ID")
    HUB_AGENCY_USERNAME: Optional[str] = Field(None, alias="HUB_AGENCY_USERNAME")
    HUB_AGENCY_PASSWORD: Optional[str] = Field(None, alias="HUB_AGENCY_PASSWORD")
    HUB_AGENCY_TENANT_ID: str = Field("9999", alias="HUB_AGENCY_TENANT_ID")

    HUB_DEFAULT_SCOPE: str = Field("inventory orders catalog", alias="HUB_DEFAULT_SCOPE")
    HUB_TENANT_SCOPE: str = Field("inventory orders catalog agency", alias="HUB_TENANT_SCOPE")
    HUB_AGENCY_SCOPE: str = Field("agency", alias="HUB_AGENCY_SCOPE")

    HUB_MARKETPLACE: str = Field("Marketplace", alias="HUB_MARKETPLACE")
    HUB_SALES_CHANNEL: str = Field("1", alias="HUB_SALES_CHANNEL")

    HUB_CONNECT_TIMEOUT: int = Field(10, ge=1, alias="HUB_CONNECT_TIMEOUT")
    HUB_READ_TIMEOUT: int = Field(30, ge=1, alias="HUB_READ_TIMEOUT")
    HUB_HTTP_RETRIES: int = Field(3, ge=1, le=10, alias="HUB_HTTP_RETRIES")
    HUB_RATE_LIMIT_PER_MIN: int = Field(120, ge=1, le=6000, alias="HUB_RATE_LIMIT_PER_MIN")
    HUB_CATALOG_PAGE_LIMIT: int = Field(10, ge=1, alias="HUB_CATALOG_PAGE_LIMIT")                  # status=2 时每页固定 10 条

    # webhook 配置
    HUB_WEBHOOK_TOKEN: Optional[str] = Field(None, alias="HUB_WEBHOOK_TOKEN")
    HUB_WEBHOOK_CALLBACK_URL: Optional[str] = Field(None, alias="HUB_WEBHOOK_CALLBACK_URL")

    # ========= Hub 全局限流配置 =========
    HUB_GLOBAL_RL_ENABLED: bool = False     # 多 worker 共享限流时打开
    HUB_GLOBAL_RATE_LIMIT_REDIS_URL: str = "redis://redis:6379/0"
    HUB_GLOBAL_RL_MAX_RPM: int = 120
    HUB_GLOBAL_RL_BURST: int = 5
    HUB_GLOBAL_RL_MAX_WAIT_MS: int = 5000
    HUB_GLOBAL_RL_KEY_PREFIX: str = "hub:rl"


    # ========= Credential lifecycle =========
    CREDENTIAL_TTL_FALLBACK_SEC: int = Field(7200, ge=60, alias="CREDENTIAL_TTL_FALLBACK_SEC")     # 响应里没有 expires_in 时的兜底
    CREDENTIAL_GRACE_SEC: int = Field(600, ge=0, alias="CREDENTIAL_GRACE_SEC")                    # 过期超过该窗口才会被清理


    # ========= ERP-A config =========
    ERP_BASE_URL: str = Field("https://api.tiny.com.br/api2", alias="ERP_BASE_URL")
    ERP_CONNECT_TIMEOUT: int = Field(10, ge=1, alias="ERP_CONNECT_TIMEOUT")
    ERP_READ_TIMEOUT: int = Field(30, ge=1, alias="ERP_READ_TIMEOUT")
    ERP_HTTP_RETRIES: int = Field(2, ge=1, le=10, alias="ERP_HTTP_RETRIES")
    ERP_SYSTEM_NAME: str = Field("tiny", alias="ERP_SYSTEM_NAME")


settings = Settings()  # 只从环境读取（含 .env）

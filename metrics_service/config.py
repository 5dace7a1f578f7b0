"""
指标服务配置模块
支持从环境变量 / .env 读取配置，自动检测 Docker 容器环境并启用服务发现
"""

import os
from functools import lru_cache
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _is_docker() -> bool:
    """检测当前是否运行在 Docker 容器内"""
    return (
        os.path.exists("/.dockerenv")
        or os.environ.get("DOCKER_CONTAINER", "").lower() in ("1", "true", "yes")
    )


def _default_redis_host() -> str:
    """Docker 环境使用服务名 'redis'，本地使用 'localhost'"""
    return "redis" if _is_docker() else "localhost"


class MetricsServiceSettings(BaseSettings):
    """指标服务配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8002)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── Redis 配置（可选缓存后端） ─────────────────────────
    REDIS_HOST: str = Field(default_factory=_default_redis_host)
    REDIS_PORT: int = Field(default=6379)
    REDIS_PASSWORD: str = Field(default="")
    REDIS_DB: int = Field(default=0)
    REDIS_ENABLED: bool = Field(default=False)
    REDIS_MAX_CONNECTIONS: int = Field(default=10)

    @property
    def REDIS_URL(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── 数据源配置 ─────────────────────────────────────────
    COINGECKO_BASE_URL: str = Field(default="https://api.coingecko.com/api/v3")
    COINMETRICS_BASE_URL: str = Field(default="https://community-api.coinmetrics.io/v4")
    FRED_BASE_URL: str = Field(default="https://api.stlouisfed.org/fred")
    FRED_API_KEY: str = Field(default="")
    COIN_ID: str = Field(default="bitcoin")
    REQUEST_TIMEOUT_SECONDS: float = Field(default=5.0)
    RATE_LIMIT_BACKOFF_SECONDS: float = Field(default=2.0)

    # ── 缓存配置 ──────────────────────────────────────────
    FAST_CACHE_TTL: int = Field(default=60 * 60)              # 价格类指标（秒）
    SLOW_CACHE_TTL: int = Field(default=14 * 24 * 60 * 60)    # 比率类指标（秒）
    CACHE_DIR: str = Field(default="./cache")                 # 文件缓存目录

    # ── 指标参数 ──────────────────────────────────────────
    RESAMPLE_POLICY: Literal["stride", "elapsed"] = Field(default="stride")
    RSI_SMOOTHED: bool = Field(default=False)        # True 时使用两年平滑 RSI
    RISK_FREE_RATE_FALLBACK: float = Field(default=0.045)
    REALIZED_CAP_FALLBACK_RATIO: float = Field(default=0.8)
    BLOCK_REWARD: float = Field(default=3.125)       # 2024 减半后的区块奖励
    BLOCKS_PER_DAY: int = Field(default=144)
    CIRCULATING_SUPPLY: float = Field(default=19_700_000)

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")


@lru_cache
def get_settings() -> MetricsServiceSettings:
    """获取全局配置（单例）"""
    return MetricsServiceSettings()


settings = get_settings()

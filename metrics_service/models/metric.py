"""指标数据模型"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class PricePoint(BaseModel):
    """单个 (时间戳, 价格) 样本，来自行情提供商"""
    model_config = ConfigDict(frozen=True)

    timestamp_ms: int
    price_usd: float


class MetricResult(BaseModel):
    """一次成功计算的指标结果"""
    value: float
    computed_at_ms: int
    change_24h: Optional[float] = None
    estimated: bool = False


class CacheEntry(BaseModel):
    """按指标名存储的最近一次结果"""
    key: str
    result: MetricResult

    def is_valid(self, now_ms: int, ttl_seconds: int) -> bool:
        return now_ms - self.result.computed_at_ms < ttl_seconds * 1000


class MetricState(str, Enum):
    CACHED = "cached"
    FRESH = "fresh"
    STALE = "stale"
    UNAVAILABLE = "unavailable"


class MetricOutcome(BaseModel):
    """编排器对单个指标的最终输出"""
    name: str
    state: MetricState
    result: Optional[MetricResult] = None
    error: Optional[str] = None


class PanelView(BaseModel):
    """展示层输出：一个看板槽位的文本与颜色"""
    slot: str
    label: str
    text: str
    color: str
    tier: Optional[str] = None
    state: MetricState
    value: Optional[float] = None
    computed_at_ms: Optional[int] = None

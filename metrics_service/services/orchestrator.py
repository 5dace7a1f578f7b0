"""
缓存感知的指标获取编排器

每个指标只需提供：缓存键、有效窗口、获取函数、计算函数、可选的备用函数和展示规则，
缓存命中 / 主数据源 / 备用数据源 / 过期缓存兜底的控制流由本模块统一实现。

状态流转：
  缓存有效                      → CACHED（不发起网络请求）
  主数据源成功 / 备用数据源成功  → 写入缓存 → FRESH
  全部失败且存在旧条目          → STALE
  全部失败且无旧条目            → UNAVAILABLE
"""

import logging
import math
import time
from typing import Any, Awaitable, Callable, List, NamedTuple, Optional, Union

from metrics_service.exceptions import DivisionByZero, MetricError
from metrics_service.layers.cache import CacheLayer
from metrics_service.layers.presentation import PanelSpec
from metrics_service.models.metric import MetricOutcome, MetricResult, MetricState

logger = logging.getLogger(__name__)


class Computed(NamedTuple):
    """计算函数的输出；只需返回数值时可直接返回 float"""
    value: float
    change_24h: Optional[float] = None
    estimated: bool = False


ComputeOutput = Union[float, Computed]


class MetricDefinition(NamedTuple):
    name: str
    cache_key: str
    ttl_seconds: int
    fetch: Callable[[], Awaitable[Any]]
    compute: Callable[[Any], ComputeOutput]
    fallback: Optional[Callable[[], Awaitable[ComputeOutput]]] = None
    panel: Optional[PanelSpec] = None


def now_ms() -> int:
    return int(time.time() * 1000)


def _as_computed(output: ComputeOutput, estimated: bool = False) -> Computed:
    if isinstance(output, Computed):
        computed = output._replace(estimated=output.estimated or estimated)
    else:
        computed = Computed(value=float(output), estimated=estimated)
    if not math.isfinite(computed.value):
        raise DivisionByZero(f"计算结果不是有限数值: {computed.value}")
    return computed


class MetricOrchestrator:
    """对任意指标执行 缓存 → 主数据源 → 备用数据源 → 过期兜底"""

    def __init__(self, cache: CacheLayer, clock: Callable[[], int] = now_ms):
        self._cache = cache
        self._clock = clock

    async def run(self, definition: MetricDefinition) -> MetricOutcome:
        entry = await self._cache.get_entry(definition.cache_key)
        if entry is not None and entry.is_valid(self._clock(), definition.ttl_seconds):
            logger.debug(f"缓存命中: {definition.cache_key}")
            return MetricOutcome(name=definition.name, state=MetricState.CACHED, result=entry.result)

        errors: List[str] = []
        computed = await self._attempt(definition, errors)

        if computed is not None:
            result = MetricResult(
                value=computed.value,
                computed_at_ms=self._clock(),
                change_24h=computed.change_24h,
                estimated=computed.estimated,
            )
            await self._cache.put(definition.cache_key, result)
            return MetricOutcome(name=definition.name, state=MetricState.FRESH, result=result)

        error = "; ".join(errors)
        if entry is not None:
            logger.warning(f"{definition.name} 获取失败，使用过期缓存: {error}")
            return MetricOutcome(
                name=definition.name, state=MetricState.STALE, result=entry.result, error=error
            )
        logger.error(f"{definition.name} 数据不可用: {error}")
        return MetricOutcome(name=definition.name, state=MetricState.UNAVAILABLE, error=error)

    async def _attempt(self, definition: MetricDefinition, errors: List[str]) -> Optional[Computed]:
        try:
            raw = await definition.fetch()
            return _as_computed(definition.compute(raw))
        except MetricError as exc:
            logger.warning(f"{definition.name} 主数据源失败: {exc}")
            errors.append(str(exc))
        except Exception as exc:
            logger.error(f"{definition.name} 主数据源异常: {exc!r}", exc_info=True)
            errors.append(repr(exc))

        if definition.fallback is None:
            return None
        try:
            computed = _as_computed(await definition.fallback(), estimated=True)
            logger.info(f"{definition.name} 使用备用数据源")
            return computed
        except MetricError as exc:
            logger.warning(f"{definition.name} 备用数据源失败: {exc}")
            errors.append(str(exc))
        except Exception as exc:
            logger.error(f"{definition.name} 备用数据源异常: {exc!r}", exc_info=True)
            errors.append(repr(exc))
        return None

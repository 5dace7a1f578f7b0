"""
指标服务
为每个指标声明 缓存键 / 有效窗口 / 获取 / 计算 / 备用 / 展示规则，
交给编排器执行，并发加载整块看板。
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from metrics_service.config import settings
from metrics_service.exceptions import MetricError
from metrics_service.layers.acquisition import AcquisitionLayer, get_acquisition_layer
from metrics_service.layers.analysis import get_analysis_layer
from metrics_service.layers.cache import CacheLayer
from metrics_service.layers.presentation import DisplaySurface, MetricPresenter, PanelSpec
from metrics_service.layers.processing import get_processing_layer
from metrics_service.models.metric import MetricOutcome, MetricState, PanelView
from metrics_service.services.orchestrator import (
    Computed,
    MetricDefinition,
    MetricOrchestrator,
    now_ms,
)

logger = logging.getLogger(__name__)

# CoinGecko 日线天数：364 天 → 365 个点 → 53 个周线点
SHARPE_HISTORY_DAYS = 364
RSI_HISTORY_DAYS = 365
RSI_SMOOTHED_HISTORY_DAYS = 730
MAYER_HISTORY_DAYS = 200
PUELL_HISTORY_DAYS = 365


class MetricService:
    """市场健康指标业务服务"""

    def __init__(
        self,
        acquisition: Optional[AcquisitionLayer] = None,
        cache: Optional[CacheLayer] = None,
        clock=now_ms,
    ):
        self._acq = acquisition or get_acquisition_layer()
        self._cache = cache or CacheLayer()
        self._proc = get_processing_layer()
        self._analysis = get_analysis_layer()
        self._presenter = MetricPresenter()
        self._orchestrator = MetricOrchestrator(self._cache, clock=clock)
        self._risk_free = self._risk_free_definition()
        self._definitions: Dict[str, MetricDefinition] = {
            d.name: d for d in self._build_definitions()
        }

    @property
    def cache(self) -> CacheLayer:
        return self._cache

    def metric_names(self) -> List[str]:
        return list(self._definitions)

    def ttl_for(self, cache_key: str) -> Optional[int]:
        """缓存键对应指标的有效窗口（秒）；未知键返回 None"""
        for definition in (self._risk_free, *self._definitions.values()):
            if definition.cache_key == cache_key:
                return definition.ttl_seconds
        return None

    # ── 公共数据获取 ──────────────────────────────────────

    def _weekly(self, raw: List[List[float]]) -> List[float]:
        df = self._proc.normalize_price_series(raw)
        return self._proc.resample_weekly(df, settings.RESAMPLE_POLICY)

    def _daily(self, raw: List[List[float]]) -> List[float]:
        return self._proc.daily_prices(self._proc.normalize_price_series(raw))

    async def _risk_free_rate(self) -> float:
        outcome = await self._orchestrator.run(self._risk_free)
        if outcome.result is None:
            return settings.RISK_FREE_RATE_FALLBACK
        return outcome.result.value

    async def _caps(self) -> Tuple[float, float, bool]:
        """市值 + 已实现市值；链上数据源失败时以固定比例估算已实现市值"""
        market = await self._acq.get_market_data()
        try:
            return market["market_cap"], await self._acq.get_realized_cap(), False
        except MetricError as exc:
            logger.warning(f"Coin Metrics 已实现市值获取失败，使用估算值: {exc}")
            realized = self._analysis.approximate_realized_cap(
                market["market_cap"], settings.REALIZED_CAP_FALLBACK_RATIO
            )
            return market["market_cap"], realized, True

    # ── 指标定义 ──────────────────────────────────────────

    def _risk_free_definition(self) -> MetricDefinition:
        async def fallback() -> float:
            return settings.RISK_FREE_RATE_FALLBACK

        return MetricDefinition(
            name="risk_free_rate",
            cache_key="riskFreeRate",
            ttl_seconds=settings.FAST_CACHE_TTL,
            fetch=self._acq.get_treasury_yield,
            compute=lambda rate: rate,
            fallback=fallback,
        )

    def _build_definitions(self) -> List[MetricDefinition]:
        fast, slow = settings.FAST_CACHE_TTL, settings.SLOW_CACHE_TTL
        analysis = self._analysis

        async def sharpe_inputs() -> Tuple[Any, float]:
            prices = await self._acq.get_price_history(SHARPE_HISTORY_DAYS)
            return prices, await self._risk_free_rate()

        async def rsi_inputs():
            days = RSI_SMOOTHED_HISTORY_DAYS if settings.RSI_SMOOTHED else RSI_HISTORY_DAYS
            return await self._acq.get_price_history(days)

        async def mayer_inputs():
            return await self._acq.get_price_history(MAYER_HISTORY_DAYS)

        async def puell_inputs():
            return await self._acq.get_price_history(PUELL_HISTORY_DAYS)

        async def realized_price_fallback() -> float:
            market = await self._acq.get_market_data()
            realized = analysis.approximate_realized_cap(
                market["market_cap"], settings.REALIZED_CAP_FALLBACK_RATIO
            )
            return analysis.realized_price(realized, settings.CIRCULATING_SUPPLY)

        async def ath_fallback() -> float:
            return analysis.all_time_high(await self._acq.get_historical_prices())

        return [
            MetricDefinition(
                name="price",
                cache_key="btcPriceUsd",
                ttl_seconds=fast,
                fetch=self._acq.get_market_data,
                compute=lambda md: Computed(md["price"], change_24h=md["change_24h"]),
                panel=PanelSpec("btc-price-usd", "Bitcoin Price", currency=True, trend=True),
            ),
            MetricDefinition(
                name="realized_price",
                cache_key="realizedPriceUsd",
                ttl_seconds=slow,
                fetch=self._acq.get_realized_cap,
                compute=lambda cap: analysis.realized_price(cap, settings.CIRCULATING_SUPPLY),
                fallback=realized_price_fallback,
                panel=PanelSpec("realized-price-usd", "Realized Price", currency=True),
            ),
            MetricDefinition(
                name="ath",
                cache_key="athPriceUsd",
                ttl_seconds=fast,
                fetch=self._acq.get_market_data,
                compute=lambda md: md["ath"],
                fallback=ath_fallback,
                panel=PanelSpec("ath-price-usd", "ATH Price", currency=True),
            ),
            MetricDefinition(
                name="market_cap_volume",
                cache_key="marketCapVolumeRatio",
                ttl_seconds=fast,
                fetch=self._acq.get_market_data,
                compute=lambda md: analysis.market_cap_volume_ratio(md["market_cap"], md["volume_24h"]),
                panel=PanelSpec("mcap-volume-ratio", "Market Cap / Volume", threshold="mcap_volume"),
            ),
            MetricDefinition(
                name="sharpe",
                cache_key="sharpeRatio",
                ttl_seconds=fast,
                fetch=sharpe_inputs,
                compute=lambda inputs: analysis.sharpe_ratio(self._weekly(inputs[0]), inputs[1]),
                panel=PanelSpec("sharpe-ratio", "Sharpe Ratio", threshold="sharpe"),
            ),
            MetricDefinition(
                name="rsi",
                cache_key="rsi",
                ttl_seconds=fast,
                fetch=rsi_inputs,
                compute=lambda raw: analysis.weekly_rsi(self._weekly(raw), smoothed=settings.RSI_SMOOTHED),
                panel=PanelSpec("rsi", "Weekly RSI", threshold="rsi"),
            ),
            MetricDefinition(
                name="mayer",
                cache_key="mayerMultiple",
                ttl_seconds=slow,
                fetch=mayer_inputs,
                compute=lambda raw: analysis.mayer_multiple(self._daily(raw)),
                panel=PanelSpec("mayer-multiple", "Mayer Multiple", threshold="mayer"),
            ),
            MetricDefinition(
                name="mvrv",
                cache_key="mvrvRatio",
                ttl_seconds=slow,
                fetch=self._caps,
                compute=lambda caps: Computed(analysis.mvrv_ratio(caps[0], caps[1]), estimated=caps[2]),
                panel=PanelSpec("mvrv-ratio", "MVRV Ratio", threshold="mvrv"),
            ),
            MetricDefinition(
                name="puell",
                cache_key="puellMultiple",
                ttl_seconds=slow,
                fetch=puell_inputs,
                compute=lambda raw: analysis.puell_multiple(
                    self._daily(raw), settings.BLOCK_REWARD, settings.BLOCKS_PER_DAY
                ),
                panel=PanelSpec("puell-multiple", "Puell Multiple", threshold="puell"),
            ),
            MetricDefinition(
                name="nupl",
                cache_key="nupl",
                ttl_seconds=slow,
                fetch=self._caps,
                compute=lambda caps: Computed(analysis.nupl(caps[0], caps[1]), estimated=caps[2]),
                panel=PanelSpec("nupl", "NUPL", threshold="nupl"),
            ),
        ]

    # ── 看板加载 ──────────────────────────────────────────

    def _present(self, definition: MetricDefinition, outcome: Any) -> PanelView:
        if isinstance(outcome, BaseException):
            logger.error(f"{definition.name} 计算异常: {outcome!r}", exc_info=outcome)
            outcome = MetricOutcome(
                name=definition.name, state=MetricState.UNAVAILABLE, error=str(outcome)
            )
        return self._presenter.present(definition.panel, outcome)

    async def load_all(self) -> DisplaySurface:
        """并发计算所有指标；单个指标失败不影响其他指标"""
        definitions = list(self._definitions.values())
        outcomes = await asyncio.gather(
            *(self._orchestrator.run(d) for d in definitions),
            return_exceptions=True,
        )
        surface = DisplaySurface([d.panel.slot for d in definitions])
        for definition, outcome in zip(definitions, outcomes):
            surface.render(self._present(definition, outcome))
        return surface

    async def load_one(self, name: str) -> Optional[PanelView]:
        definition = self._definitions.get(name)
        if definition is None:
            return None
        try:
            outcome = await self._orchestrator.run(definition)
        except Exception as exc:
            outcome = exc
        return self._present(definition, outcome)


# ── 模块级别单例 ──────────────────────────────────────────
_metric_service: Optional[MetricService] = None


def get_metric_service() -> MetricService:
    global _metric_service
    if _metric_service is None:
        _metric_service = MetricService()
    return _metric_service


def reset_metric_service() -> None:
    global _metric_service
    _metric_service = None

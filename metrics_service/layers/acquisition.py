"""
Layer 1 – 数据获取层
从 CoinGecko（主行情源）、Coin Metrics（链上指标源）、FRED（无风险利率）拉取原始数据，
统一处理超时、限流重试和响应解析，向上层提供标准接口。
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from metrics_service.config import settings
from metrics_service.exceptions import MalformedResponse, NetworkFailure, RateLimited

logger = logging.getLogger(__name__)


class AcquisitionLayer:
    """数据获取层：封装各数据源的 HTTP GET 请求"""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = client or httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT_SECONDS)
        self._sleep = sleep
        self._coin = settings.COIN_ID

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── 通用请求 ──────────────────────────────────────────

    async def _send(self, url: str, params: Optional[Dict[str, Any]]) -> httpx.Response:
        try:
            return await self._client.get(
                url, params=params, timeout=settings.REQUEST_TIMEOUT_SECONDS
            )
        except httpx.TimeoutException as exc:
            raise NetworkFailure(f"请求超时: {url}") from exc
        except httpx.HTTPError as exc:
            raise NetworkFailure(f"请求失败: {url}: {exc}") from exc

    async def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        发起 GET 请求并解析 JSON

        429 时等待固定间隔后重试一次，重试仍为 429 则抛出 RateLimited；
        其他非 2xx 状态直接抛出 NetworkFailure。
        """
        resp = await self._send(url, params)
        if resp.status_code == 429:
            logger.warning(
                f"检测到限流 {url}，{settings.RATE_LIMIT_BACKOFF_SECONDS}s 后重试一次"
            )
            await self._sleep(settings.RATE_LIMIT_BACKOFF_SECONDS)
            resp = await self._send(url, params)
            if resp.status_code == 429:
                raise RateLimited(url)

        if resp.status_code >= 400:
            raise NetworkFailure(f"HTTP {resp.status_code}: {url}", status_code=resp.status_code)

        try:
            return resp.json()
        except ValueError as exc:
            raise MalformedResponse(f"响应不是合法 JSON: {url}") from exc

    # ── CoinGecko ─────────────────────────────────────────

    async def get_market_data(self) -> Dict[str, float]:
        """获取现价、24h 涨跌幅、市值、24h 成交量、历史最高价"""
        data = await self.get_json(
            f"{settings.COINGECKO_BASE_URL}/coins/{self._coin}",
            params={"market_data": "true"},
        )
        try:
            md = data["market_data"]
            return {
                "price": float(md["current_price"]["usd"]),
                "change_24h": float(md.get("price_change_percentage_24h") or 0.0),
                "market_cap": float(md["market_cap"]["usd"]),
                "volume_24h": float(md["total_volume"]["usd"]),
                "ath": float(md["ath"]["usd"]),
            }
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedResponse(f"CoinGecko market_data 缺少字段: {exc}") from exc

    async def get_price_history(self, days: int) -> List[List[float]]:
        """获取日线价格序列 [[timestamp_ms, price], ...]"""
        data = await self.get_json(
            f"{settings.COINGECKO_BASE_URL}/coins/{self._coin}/market_chart",
            params={"vs_currency": "usd", "days": days, "interval": "daily"},
        )
        prices = data.get("prices") if isinstance(data, dict) else None
        if not isinstance(prices, list):
            raise MalformedResponse("CoinGecko market_chart 缺少 prices 字段")
        return prices

    # ── Coin Metrics ──────────────────────────────────────

    async def _asset_metric(self, metric: str) -> List[Dict[str, Any]]:
        data = await self.get_json(
            f"{settings.COINMETRICS_BASE_URL}/timeseries/asset-metrics",
            params={"assets": "btc", "metrics": metric, "page_size": 10000},
        )
        rows = data.get("data") if isinstance(data, dict) else None
        if not isinstance(rows, list) or not rows:
            raise MalformedResponse(f"Coin Metrics {metric} 无数据")
        return rows

    async def get_realized_cap(self) -> float:
        """获取最新已实现市值（CapRealUSD）"""
        rows = await self._asset_metric("CapRealUSD")
        try:
            return float(rows[-1]["CapRealUSD"])
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedResponse(f"Coin Metrics CapRealUSD 字段无效: {exc}") from exc

    async def get_historical_prices(self) -> List[float]:
        """获取 Coin Metrics 历史 USD 价格（PriceUSD），跳过无法解析的值"""
        rows = await self._asset_metric("PriceUSD")
        prices = []
        for row in rows:
            try:
                prices.append(float(row["PriceUSD"]))
            except (KeyError, TypeError, ValueError):
                continue
        if not prices:
            raise MalformedResponse("Coin Metrics PriceUSD 无有效数据")
        return prices

    # ── FRED ──────────────────────────────────────────────

    async def get_treasury_yield(self) -> float:
        """获取最新一年期国债收益率（小数形式，如 0.0475）"""
        params = {
            "series_id": "DGS1",
            "sort_order": "desc",
            "limit": 1,
            "file_type": "json",
        }
        if settings.FRED_API_KEY:
            params["api_key"] = settings.FRED_API_KEY
        data = await self.get_json(f"{settings.FRED_BASE_URL}/series/observations", params=params)
        try:
            return float(data["observations"][0]["value"]) / 100
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise MalformedResponse(f"FRED DGS1 响应无效: {exc}") from exc


# ── 模块级别单例 ──────────────────────────────────────────
_acquisition: Optional[AcquisitionLayer] = None


def get_acquisition_layer() -> AcquisitionLayer:
    global _acquisition
    if _acquisition is None:
        _acquisition = AcquisitionLayer()
    return _acquisition


async def close_acquisition_layer() -> None:
    global _acquisition
    if _acquisition is not None:
        await _acquisition.aclose()
        _acquisition = None

"""
Layer 4 – 指标分析层
在处理层输出的价格序列或标量行情数据上计算市场健康指标：
Sharpe、周线 RSI、Mayer、Puell、MVRV、NUPL、市值/成交量比等。

所有方法均为纯计算，不做 I/O；数据不足或分母为零时抛出领域异常而不是返回 NaN / Infinity。
"""

import logging
import math
from typing import List, Optional, Sequence

import pandas as pd

from metrics_service.exceptions import DivisionByZero, InsufficientData

logger = logging.getLogger(__name__)

WEEKS_PER_YEAR = 52
RSI_PERIOD = 14
RSI_ZERO_LOSS_FLOOR = 0.0001

SHARPE_MIN_POINTS = 52
RSI_MIN_POINTS = RSI_PERIOD + 1
RSI_SMOOTHED_MIN_POINTS = 104
MAYER_WINDOW = 200
PUELL_WINDOW = 365


def _require(metric: str, values: Sequence[float], required: int) -> None:
    if len(values) < required:
        raise InsufficientData(metric, required, len(values))


class AnalysisLayer:
    """指标分析层"""

    # ── 收益率 ────────────────────────────────────────────

    def period_returns(self, prices: Sequence[float]) -> List[float]:
        """相邻价格的区间收益率 r[i] = (p[i] - p[i-1]) / p[i-1]"""
        series = pd.Series(prices, dtype="float64")
        if (series <= 0).any():
            raise DivisionByZero("价格序列包含非正值，无法计算收益率")
        return (series.diff() / series.shift(1)).dropna().tolist()

    # ── Sharpe ────────────────────────────────────────────

    def sharpe_ratio(self, weekly_prices: Sequence[float], annual_risk_free_rate: float) -> float:
        """
        年化 Sharpe 比率

        使用样本方差（除数 n-1），周无风险利率 = 年化利率 / 52，结果乘以 sqrt(52) 年化。
        """
        _require("Sharpe", weekly_prices, SHARPE_MIN_POINTS)
        returns = pd.Series(self.period_returns(weekly_prices))
        mean_return = returns.mean()
        std_dev = returns.std(ddof=1)
        if not std_dev or math.isnan(std_dev):
            raise DivisionByZero("收益率标准差为 0，Sharpe 无法计算")
        period_rf = annual_risk_free_rate / WEEKS_PER_YEAR
        return float((mean_return - period_rf) / std_dev * math.sqrt(WEEKS_PER_YEAR))

    # ── RSI ───────────────────────────────────────────────

    def rsi_from_differences(self, diffs: Sequence[float], smoothed: bool = False) -> float:
        """
        由价格差分计算 RSI

        最近 14 个差分求平均涨幅 / 跌幅；平滑模式下再从边界向更早的差分逐个做指数平滑：
        avg = (avg * 13 + x) / 14。平均跌幅为 0 时以 0.0001 代替。
        """
        _require("RSI", diffs, RSI_PERIOD)
        recent = diffs[-RSI_PERIOD:]
        avg_gain = sum(d for d in recent if d > 0) / RSI_PERIOD
        avg_loss = sum(-d for d in recent if d < 0) / RSI_PERIOD

        if smoothed:
            for diff in reversed(diffs[:-RSI_PERIOD]):
                avg_gain = (avg_gain * (RSI_PERIOD - 1) + max(diff, 0.0)) / RSI_PERIOD
                avg_loss = (avg_loss * (RSI_PERIOD - 1) + max(-diff, 0.0)) / RSI_PERIOD

        rs = avg_gain / (avg_loss if avg_loss != 0 else RSI_ZERO_LOSS_FLOOR)
        return float(100 - 100 / (1 + rs))

    def weekly_rsi(self, weekly_prices: Sequence[float], smoothed: bool = False) -> float:
        """周线 RSI；简单模式至少 15 个周线点，两年平滑模式至少 104 个"""
        required = RSI_SMOOTHED_MIN_POINTS if smoothed else RSI_MIN_POINTS
        _require("RSI", weekly_prices, required)
        diffs = pd.Series(weekly_prices, dtype="float64").diff().dropna().tolist()
        return self.rsi_from_differences(diffs, smoothed=smoothed)

    # ── 均线类倍数 ────────────────────────────────────────

    def mayer_multiple(self, daily_prices: Sequence[float]) -> float:
        """现价 / 200 日均价"""
        _require("Mayer", daily_prices, MAYER_WINDOW)
        series = pd.Series(daily_prices, dtype="float64")
        ma200 = series.iloc[-MAYER_WINDOW:].mean()
        if ma200 == 0:
            raise DivisionByZero("200 日均价为 0")
        return float(series.iloc[-1] / ma200)

    def puell_multiple(
        self,
        daily_prices: Sequence[float],
        block_reward: float,
        blocks_per_day: int,
    ) -> float:
        """当日发行价值 / 365 日发行价值均值；发行价值 = 区块奖励 × 每日区块数 × 当日价格"""
        _require("Puell", daily_prices, PUELL_WINDOW)
        issuance = pd.Series(daily_prices, dtype="float64") * block_reward * blocks_per_day
        ma365 = issuance.iloc[-PUELL_WINDOW:].mean()
        if ma365 == 0:
            raise DivisionByZero("365 日发行价值均值为 0")
        return float(issuance.iloc[-1] / ma365)

    # ── 市值类比率 ────────────────────────────────────────

    def approximate_realized_cap(self, market_cap: float, ratio: float) -> float:
        """链上数据源不可用时，以市值的固定比例估算已实现市值"""
        return market_cap * ratio

    def mvrv_ratio(self, market_cap: float, realized_cap: float) -> float:
        if realized_cap == 0:
            raise DivisionByZero("已实现市值为 0")
        return market_cap / realized_cap

    def nupl(self, market_cap: float, realized_cap: float) -> float:
        if market_cap == 0:
            raise DivisionByZero("市值为 0")
        return (market_cap - realized_cap) / market_cap

    def market_cap_volume_ratio(self, market_cap: float, volume_24h: float) -> float:
        if volume_24h == 0:
            raise DivisionByZero("24h 成交量为 0")
        return market_cap / volume_24h

    def realized_price(self, realized_cap: float, circulating_supply: float) -> float:
        if circulating_supply == 0:
            raise DivisionByZero("流通量为 0")
        return realized_cap / circulating_supply

    def all_time_high(self, prices: Sequence[float]) -> float:
        """历史价格序列中的最高价"""
        _require("ATH", prices, 1)
        return float(max(prices))


# ── 模块级别单例 ──────────────────────────────────────────
_analysis: Optional[AnalysisLayer] = None


def get_analysis_layer() -> AnalysisLayer:
    global _analysis
    if _analysis is None:
        _analysis = AnalysisLayer()
    return _analysis

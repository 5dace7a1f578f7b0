"""
Layer 3 – 数据处理层
把行情源返回的 (时间戳, 价格) 原始序列清洗为有序价格序列，并重采样为周线。
"""

import logging
from typing import Any, List, Optional, Sequence

import pandas as pd

from metrics_service.exceptions import MalformedResponse
from metrics_service.models.metric import PricePoint

logger = logging.getLogger(__name__)

WEEK_MS = 7 * 24 * 60 * 60 * 1000
DAYS_PER_WEEK = 7

RESAMPLE_POLICIES = ("stride", "elapsed")


class ProcessingLayer:
    """数据处理层：清洗 + 重采样"""

    def normalize_price_series(self, raw: Sequence[Sequence[Any]]) -> pd.DataFrame:
        """
        将原始 [[timestamp_ms, price], ...] 标准化为 DataFrame

        标准列：timestamp_ms, price_usd
        - 时间戳无法解析的行被丢弃
        - 价格无法解析时置为 NaN（保留行位置，供固定步长采样跳过）
        - 重复时间戳保留最后一条，按时间升序排列
        """
        if not isinstance(raw, (list, tuple)):
            raise MalformedResponse(f"价格序列格式错误: {type(raw).__name__}")
        if not raw:
            return pd.DataFrame(columns=["timestamp_ms", "price_usd"])

        try:
            df = pd.DataFrame([list(row)[:2] for row in raw], columns=["timestamp_ms", "price_usd"])
        except (TypeError, ValueError) as exc:
            raise MalformedResponse(f"价格序列格式错误: {exc}") from exc

        df["timestamp_ms"] = pd.to_numeric(df["timestamp_ms"], errors="coerce")
        df["price_usd"] = pd.to_numeric(df["price_usd"], errors="coerce")
        df = df.dropna(subset=["timestamp_ms"])
        df["timestamp_ms"] = df["timestamp_ms"].astype("int64")

        df = df.drop_duplicates(subset=["timestamp_ms"], keep="last")
        df = df.sort_values("timestamp_ms").reset_index(drop=True)
        return df

    def to_price_points(self, df: pd.DataFrame) -> List[PricePoint]:
        """DataFrame 转换为 PricePoint 列表（跳过缺失价格）"""
        if df.empty:
            return []
        valid = df.dropna(subset=["price_usd"])
        return [
            PricePoint(timestamp_ms=int(row.timestamp_ms), price_usd=float(row.price_usd))
            for row in valid.itertuples(index=False)
        ]

    def daily_prices(self, df: pd.DataFrame) -> List[float]:
        """有效日线价格列表（去除缺失与非正价格）"""
        if df.empty:
            return []
        prices = df["price_usd"]
        return prices[prices > 0].astype(float).tolist()

    # ── 周线重采样 ────────────────────────────────────────

    def resample_fixed_stride(self, df: pd.DataFrame, stride: int = DAYS_PER_WEEK) -> List[float]:
        """每隔 stride 行取一个点（从第 0 行开始），该位置无有效价格则跳过"""
        if df.empty:
            return []
        sampled = df["price_usd"].iloc[::stride]
        return sampled[sampled > 0].astype(float).tolist()

    def resample_by_elapsed(self, df: pd.DataFrame, spacing_ms: int = WEEK_MS) -> List[float]:
        """
        按时间间隔采样：从第一个有效点开始，距上一个已采样点 ≥ spacing_ms 时采样，
        锚点随每次采样移动到该点的时间戳，不按固定增量累积漂移
        """
        weekly: List[float] = []
        anchor: Optional[int] = None
        for point in self.to_price_points(df):
            if point.price_usd <= 0:
                continue
            if anchor is None or point.timestamp_ms - anchor >= spacing_ms:
                weekly.append(point.price_usd)
                anchor = point.timestamp_ms
        return weekly

    def resample_weekly(self, df: pd.DataFrame, policy: str = "stride") -> List[float]:
        """按策略重采样为周线"""
        if policy == "stride":
            return self.resample_fixed_stride(df)
        if policy == "elapsed":
            return self.resample_by_elapsed(df)
        raise ValueError(f"未知的重采样策略: {policy}，可选: {RESAMPLE_POLICIES}")


# ── 模块级别单例 ──────────────────────────────────────────
_processor: Optional[ProcessingLayer] = None


def get_processing_layer() -> ProcessingLayer:
    global _processor
    if _processor is None:
        _processor = ProcessingLayer()
    return _processor

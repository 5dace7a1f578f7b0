"""
Layer 5 – 展示层
把指标数值映射为五档分级与颜色，并格式化为看板文本（最新 / 缓存 / 过期 / 不可用）。
"""

import html
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple

from metrics_service.models.metric import MetricOutcome, MetricState, PanelView

logger = logging.getLogger(__name__)


class Tier(str, Enum):
    """五档分级，从低估（深绿）到高估（深红）"""
    LOWEST = "lowest"
    LOW = "low"
    NEUTRAL = "neutral"
    HIGH = "high"
    HIGHEST = "highest"


_ORDERED_TIERS = [Tier.LOWEST, Tier.LOW, Tier.NEUTRAL, Tier.HIGH, Tier.HIGHEST]

TIER_COLORS: Dict[Tier, str] = {
    Tier.LOWEST: "#28a745",
    Tier.LOW: "#90ee90",
    Tier.NEUTRAL: "#f9f9f9",
    Tier.HIGH: "#f08080",
    Tier.HIGHEST: "#dc143c",
}

UNAVAILABLE_COLOR = "#f9f9f9"
TREND_UP_COLOR = "#28a745"
TREND_DOWN_COLOR = "#dc143c"
TREND_FLAT_COLOR = "#cccccc"
TREND_THRESHOLD = 0.1


class ThresholdTable(NamedTuple):
    """四个有序边界，每个边界为 (值, 是否包含)；包含表示 value <= bound 即落入该档"""
    bounds: Tuple[Tuple[float, bool], ...]


def _inclusive(*values: float) -> ThresholdTable:
    return ThresholdTable(tuple((v, True) for v in values))


def _exclusive(*values: float) -> ThresholdTable:
    return ThresholdTable(tuple((v, False) for v in values))


THRESHOLDS: Dict[str, ThresholdTable] = {
    "rsi": _inclusive(30, 40, 60, 70),
    "sharpe": ThresholdTable(((-1, False), (0, True), (1, True), (2, True))),
    "mayer": _exclusive(0.8, 1.3, 2.4, 3.0),
    "mvrv": _exclusive(0.8, 1.2, 2.0, 3.0),
    "puell": _exclusive(0.3, 0.5, 1.5, 3.0),
    "nupl": _exclusive(-0.4, -0.2, 0.5, 0.75),
    "mcap_volume": _exclusive(20, 40, 80, 150),
}


def tier_for(value: float, table: ThresholdTable) -> Tier:
    """数值 × 阈值表 → 分级"""
    for tier, (bound, inclusive) in zip(_ORDERED_TIERS, table.bounds):
        if value < bound or (inclusive and value == bound):
            return tier
    return Tier.HIGHEST


def trend_color(change_24h: Optional[float]) -> str:
    """现价按 24h 涨跌着色"""
    if change_24h is None:
        return TREND_FLAT_COLOR
    if change_24h > TREND_THRESHOLD:
        return TREND_UP_COLOR
    if change_24h < -TREND_THRESHOLD:
        return TREND_DOWN_COLOR
    return TREND_FLAT_COLOR


def format_date(timestamp_ms: int) -> str:
    """毫秒时间戳 → 'Jan 5, 2025'"""
    dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return f"{dt.strftime('%b')} {dt.day}, {dt.year}"


class PanelSpec(NamedTuple):
    """一个看板槽位的展示规则"""
    slot: str
    label: str
    threshold: Optional[str] = None   # THRESHOLDS 中的键；None 表示不分级
    currency: bool = False            # True 时显示为 $123.45
    trend: bool = False               # True 时按 24h 涨跌着色


class MetricPresenter:
    """指标展示：数值 → 文本 + 颜色"""

    def format_value(self, spec: PanelSpec, value: float) -> str:
        if spec.currency:
            return f"${value:.2f}"
        return f"{spec.label}: {value:.2f}"

    def present(self, spec: PanelSpec, outcome: MetricOutcome) -> PanelView:
        result = outcome.result
        if outcome.state == MetricState.UNAVAILABLE or result is None:
            return PanelView(
                slot=spec.slot,
                label=spec.label,
                text=f"{spec.label}: Data unavailable",
                color=UNAVAILABLE_COLOR,
                state=MetricState.UNAVAILABLE,
            )

        text = self.format_value(spec, result.value)
        if outcome.state == MetricState.CACHED:
            text += f" (Last updated: {format_date(result.computed_at_ms)})"
        elif outcome.state == MetricState.STALE:
            text += f" (Data unavailable, Last updated: {format_date(result.computed_at_ms)})"
        elif result.estimated:
            text += " (Estimated)"

        tier = None
        if spec.trend:
            color = trend_color(result.change_24h)
        elif spec.threshold:
            tier = tier_for(result.value, THRESHOLDS[spec.threshold])
            color = TIER_COLORS[tier]
        else:
            color = TIER_COLORS[Tier.NEUTRAL]

        return PanelView(
            slot=spec.slot,
            label=spec.label,
            text=text,
            color=color,
            tier=tier.value if tier else None,
            state=outcome.state,
            value=result.value,
            computed_at_ms=result.computed_at_ms,
        )


# ── 展示面 ────────────────────────────────────────────────

class DisplaySurface:
    """具名输出槽位；写入不存在的槽位为空操作"""

    def __init__(self, slots: List[str]):
        self._slots: Dict[str, Optional[PanelView]] = {s: None for s in slots}

    def render(self, panel: PanelView) -> bool:
        if panel.slot not in self._slots:
            logger.debug(f"展示槽位不存在，忽略: {panel.slot}")
            return False
        self._slots[panel.slot] = panel
        return True

    def panels(self) -> List[PanelView]:
        return [p for p in self._slots.values() if p is not None]

    def to_html(self, title: str = "Bitcoin Market Health") -> str:
        rows = []
        for slot, panel in self._slots.items():
            if panel is None:
                continue
            rows.append(
                f'<div id="{html.escape(slot)}" class="metric {panel.state.value}" '
                f'style="background-color:{panel.color};color:#000000">'
                f"{html.escape(panel.text)}</div>"
            )
        body = "\n".join(rows)
        return (
            "<!DOCTYPE html>\n"
            f"<html><head><meta charset=\"utf-8\"><title>{html.escape(title)}</title></head>\n"
            f"<body><h1>{html.escape(title)}</h1>\n{body}\n</body></html>"
        )

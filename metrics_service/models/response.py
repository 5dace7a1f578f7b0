"""统一 API 响应模型"""

from typing import Any, List, Optional
from pydantic import BaseModel

from metrics_service.models.metric import MetricState, PanelView


class ApiResponse(BaseModel):
    """标准 API 响应封装"""
    success: bool = True
    data: Optional[Any] = None
    message: str = ""
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: str = "success") -> "ApiResponse":
        return cls(success=True, data=data, message=message)

    @classmethod
    def from_panels(cls, panels: List[PanelView]) -> "ApiResponse":
        """看板结果封装：message 中汇总不可用 / 过期的指标数量"""
        unavailable = sum(1 for p in panels if p.state == MetricState.UNAVAILABLE)
        stale = sum(1 for p in panels if p.state == MetricState.STALE)
        return cls(
            success=True,
            data=[p.model_dump() for p in panels],
            message=f"{len(panels)} 项指标，{stale} 项使用过期缓存，{unavailable} 项不可用",
        )

"""
指标计算与数据获取的领域异常

所有异常均在编排器边界被捕获，转换为「最新值 / 过期缓存值 / 不可用」三种结果之一，
不会以原始异常的形式暴露给页面。
"""

from typing import Optional


class MetricError(Exception):
    """指标相关错误基类"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NetworkFailure(MetricError):
    """非 2xx 响应（限流除外）、超时或连接错误"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RateLimited(MetricError):
    """HTTP 429，重试一次后仍被限流"""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"请求被限流: {url}")


class MalformedResponse(MetricError):
    """响应体无法解析或缺少预期字段"""


class InsufficientData(MetricError):
    """序列长度不足以计算该指标"""

    def __init__(self, metric: str, required: int, actual: int):
        self.metric = metric
        self.required = required
        self.actual = actual
        super().__init__(f"{metric} 数据不足: 需要 {required} 个点，实际 {actual} 个")


class DivisionByZero(MetricError):
    """分母为零（成交量为 0、标准差为 0 等），显式拦截而非产生 NaN / Infinity"""

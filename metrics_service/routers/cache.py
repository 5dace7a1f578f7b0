"""
缓存查看路由
GET  /api/cache/stats     - 缓存后端与已缓存指标
GET  /api/cache/{key}     - 单个指标的缓存条目及其是否仍在有效窗口内
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from metrics_service.config import settings
from metrics_service.models.response import ApiResponse
from metrics_service.services.metric_service import get_metric_service
from metrics_service.services.orchestrator import now_ms

router = APIRouter(prefix="/api/cache", tags=["缓存查看"])


@router.get("/stats", response_model=ApiResponse)
async def cache_stats():
    """获取缓存统计信息（后端类型、条目数量）"""
    stats = await get_metric_service().cache.stats()
    return ApiResponse.ok(data=stats)


@router.get("/{key}", response_model=ApiResponse)
async def cache_entry(
    key: str,
    ttl: Optional[int] = Query(default=None, description="有效窗口（秒），默认取该指标自身的窗口"),
):
    """查看单个缓存条目"""
    service = get_metric_service()
    entry = await service.cache.get_entry(key)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"缓存条目不存在: {key}")
    if ttl is None:
        ttl = service.ttl_for(key) or settings.FAST_CACHE_TTL
    return ApiResponse.ok(data={
        "key": entry.key,
        "result": entry.result.model_dump(),
        "ttl_seconds": ttl,
        "valid": entry.is_valid(now_ms(), ttl),
    })

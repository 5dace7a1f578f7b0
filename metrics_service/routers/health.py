"""健康检查路由"""

import time

from fastapi import APIRouter

from metrics_service import __version__
from metrics_service.db import check_health
from metrics_service.services.metric_service import get_metric_service

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health():
    """服务健康检查"""
    db_health = await check_health()
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "service": "Bitcoin Metrics Service",
            "cache_backend": get_metric_service().cache.backend,
            "databases": db_health,
        },
        "message": "服务运行正常",
    }

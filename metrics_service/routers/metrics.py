"""
指标路由
GET /api/metrics          - 并发计算全部指标，返回看板槽位列表
GET /api/metrics/{name}   - 单个指标
GET /dashboard            - 指标看板 HTML 页面
"""

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import HTMLResponse

from metrics_service.models.response import ApiResponse
from metrics_service.services.metric_service import get_metric_service

router = APIRouter(tags=["市场健康指标"])


@router.get("/api/metrics", response_model=ApiResponse)
async def list_metrics():
    """获取全部指标（缓存有效时不访问外部 API）"""
    surface = await get_metric_service().load_all()
    return ApiResponse.from_panels(surface.panels())


@router.get("/api/metrics/{name}", response_model=ApiResponse)
async def get_metric(name: str):
    """获取单个指标，name 示例: `sharpe`、`rsi`、`mvrv`"""
    svc = get_metric_service()
    panel = await svc.load_one(name)
    if panel is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"未知指标: {name}，支持的指标: {svc.metric_names()}",
        )
    return ApiResponse.ok(data=panel.model_dump())


@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard():
    """指标看板页面"""
    surface = await get_metric_service().load_all()
    return HTMLResponse(surface.to_html())

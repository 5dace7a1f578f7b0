"""
Bitcoin 市场健康指标服务
独立 FastAPI 应用程序入口

启动方式:
    uvicorn metrics_service.main:app --host 0.0.0.0 --port 8002
    python -m metrics_service.main
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from metrics_service import __version__
from metrics_service.config import settings
from metrics_service.db import init_redis, close_connections
from metrics_service.layers.acquisition import close_acquisition_layer
from metrics_service.routers import health, metrics, cache
from metrics_service.services.metric_service import reset_metric_service

# ── 日志配置 ──────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── 生命周期管理 ──────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用启动/关闭生命周期钩子"""
    logger.info("=" * 60)
    logger.info(f"🚀 Bitcoin Metrics Service v{__version__} 启动中")
    logger.info(f"   CoinGecko   : {settings.COINGECKO_BASE_URL}")
    logger.info(f"   Coin Metrics: {settings.COINMETRICS_BASE_URL}")
    logger.info(f"   Redis       : {settings.REDIS_HOST}:{settings.REDIS_PORT}")
    logger.info("=" * 60)

    # Redis 失败不阻断启动，降级为文件缓存
    if await init_redis():
        logger.info("✅ 缓存后端: Redis")
    else:
        logger.warning(f"⚠️ 缓存后端降级为文件模式: {settings.CACHE_DIR}")

    # 指标服务在首次请求时按当前可用后端创建
    reset_metric_service()

    yield

    logger.info("🔄 指标服务正在关闭...")
    await close_acquisition_layer()
    await close_connections()
    reset_metric_service()
    logger.info("✅ 指标服务已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="Bitcoin 市场健康指标服务",
    description=(
        "轮询公开行情 API 计算 Bitcoin 市场健康指标：\n"
        "- 📈 Sharpe 比率 / 周线 RSI\n"
        "- 📊 Mayer 倍数 / Puell 倍数 / MVRV / NUPL / 市值成交量比\n"
        "- 💲 现价 / 已实现价格 / 历史最高价\n"
        "- 🗄️ 按指标分窗口的本地缓存（Redis / 文件）\n\n"
        "**分层架构**\n"
        "```\n"
        "Acquisition Layer   ← CoinGecko / Coin Metrics / FRED\n"
        "Cache Layer         ← Redis / 文件键值存储 + 写入时间戳\n"
        "Processing Layer    ← 价格序列标准化、周线重采样\n"
        "Analysis Layer      ← 指标计算\n"
        "Presentation Layer  ← 阈值分级、颜色、文本\n"
        "```"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS 中间件 ───────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── 请求计时中间件 ─────────────────────────────────────────
@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
    return response


# ── 全局异常处理 ──────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"未处理的异常: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "内部服务错误", "message": str(exc)},
    )


# ── 注册路由 ──────────────────────────────────────────────
app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(cache.router)


# ── 根路由 ───────────────────────────────────────────────
@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "Bitcoin Metrics Service",
        "version": __version__,
        "docs": "/docs",
        "dashboard": "/dashboard",
        "health": "/health",
    }


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "metrics_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from promo_engine.core.config import settings
from promo_engine.core.database import init_database, close_database
from promo_engine.services.common_cache import rule_cache
from promo_engine.api.health import router as health_router
from promo_engine.api.pricing import router as pricing_router
from promo_engine.api.exceptions import (
    validation_exception_handler,
    http_exception_handler,
    database_exception_handler,
    general_exception_handler,
    business_exception_handler,
    BusinessException
)

import logging

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("正在启动促销定价服务")

    await init_database()
    logger.info("PostgreSQL数据库初始化成功")

    # 缓存不可用时规则直接查询数据库
    try:
        await rule_cache.init_redis()
    except Exception as e:
        logger.warning(f"Redis不可用，规则缓存已禁用: {e}")
        await rule_cache.close_redis()

    logger.info("应用启动完成")

    yield

    logger.info("正在关闭应用")
    await close_database()
    await rule_cache.close_redis()
    logger.info("应用关闭完成")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="多商家商城折扣与优惠券定价引擎",
    debug=settings.debug,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(health_router)
app.include_router(pricing_router)

# 注册异常处理器
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(SQLAlchemyError, database_exception_handler)
app.add_exception_handler(BusinessException, business_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)


@app.get("/")
async def root():
    """根路径"""
    return {
        "message": f"欢迎使用 {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    uvicorn.run(
        "promo_engine.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )

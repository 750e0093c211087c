from fastapi import APIRouter, HTTPException
import logging

from promo_engine.core.config import settings
from promo_engine.core.database import database_service
from promo_engine.services.common_cache import rule_cache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["健康检查"])


@router.get("")
async def health_check():
    """基础健康检查接口"""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment
    }


@router.get("/database")
async def database_health():
    """数据库与缓存连接检查，缓存不可用不影响整体状态"""
    health_status = {
        "postgresql": False,
        "redis": False,
        "overall": False,
        "details": {}
    }

    try:
        pg_status = await database_service.health_check()
        health_status["postgresql"] = pg_status["status"] == "healthy"
        health_status["details"]["postgresql"] = pg_status["message"]
    except Exception as e:
        logger.error(f"数据库健康检查异常: {str(e)}")
        raise HTTPException(status_code=503, detail=f"数据库连接失败: {str(e)}")

    if rule_cache.redis_client:
        try:
            await rule_cache.redis_client.ping()
            health_status["redis"] = True
            health_status["details"]["redis"] = "连接正常"
        except Exception as e:
            health_status["details"]["redis"] = f"连接失败: {str(e)}"
    else:
        health_status["details"]["redis"] = "未连接，规则直接查询数据库"

    health_status["overall"] = health_status["postgresql"]
    if not health_status["overall"]:
        logger.warning("数据库连接检查失败", extra={"details": health_status["details"]})
    return health_status

"""
API异常处理
统一返回 {"success": false, "error": {...}} 结构
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class BusinessException(Exception):
    """业务异常"""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


def _error_response(status_code: int, code: str, message: str, details: Any = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({
            "success": False,
            "error": {
                "code": code,
                "message": message,
                "details": details
            }
        })
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """请求参数验证异常"""
    return _error_response(422, "validation_error", "请求参数验证失败", exc.errors())


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """HTTP异常"""
    return _error_response(exc.status_code, "http_error", str(exc.detail))


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """数据库异常"""
    logger.error(f"数据库操作失败 {request.url.path}: {exc}")
    return _error_response(503, "database_error", "数据库暂时不可用")


async def business_exception_handler(request: Request, exc: BusinessException) -> JSONResponse:
    """业务异常"""
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """未处理异常"""
    logger.exception(f"未处理的异常 {request.url.path}: {exc}")
    return _error_response(500, "internal_error", "服务器内部错误")

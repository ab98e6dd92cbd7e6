"""
全局异常处理器
统一返回 {success: false, error, message}
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from wonderstars.core.exceptions import BusinessException, DatastoreError

logger = logging.getLogger(__name__)

__all__ = [
    "BusinessException",
    "validation_exception_handler",
    "http_exception_handler",
    "database_exception_handler",
    "business_exception_handler",
    "general_exception_handler",
]


def _error_body(error: str, message: str, **extra) -> dict:
    body = {"success": False, "error": error, "message": message}
    body.update(extra)
    return body


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """请求参数校验失败"""
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", [])[1:]),
            "message": error.get("msg"),
        }
        for error in exc.errors()
    ]
    logger.info(f"请求参数校验失败 {request.url.path}: {errors}")
    return JSONResponse(
        status_code=422,
        content=_error_body("validation_error", "Invalid request", details=errors)
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("http_error", str(exc.detail))
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """数据库异常不把内部信息返回给调用方"""
    logger.error(f"数据库异常 {request.url.path}: {exc}")
    generic = DatastoreError()
    return JSONResponse(
        status_code=generic.status_code,
        content=_error_body(generic.error_code, generic.message)
    )


async def business_exception_handler(request: Request, exc: BusinessException):
    """业务异常"""
    if isinstance(exc, DatastoreError):
        logger.error(f"数据库不可用 {request.url.path}: {exc.details}")
    else:
        logger.info(f"业务异常 {request.url.path}: {exc.error_code} {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.error_code, exc.message, details=exc.details)
    )


async def general_exception_handler(request: Request, exc: Exception):
    logger.exception(f"未处理的异常 {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content=_error_body("internal_error", "Something went wrong. Please try again.")
    )

"""
业务码到 HTTP 状态的映射与全局异常处理器
"""
from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import traceback
import uuid
from starlette import status as http_status

from .response import error_response, exception_response
from shared.codes import BusinessCode, PaymentCode
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException


logger = get_logger(__name__)


_HTTP_STATUS_BY_CODE = {
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.UNAUTHORIZED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.FORBIDDEN: http_status.HTTP_403_FORBIDDEN,
    BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.DATABASE_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,

    PaymentCode.INVALID_REQUEST: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    PaymentCode.INVALID_AMOUNT: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    PaymentCode.TOKEN_MISMATCH: http_status.HTTP_409_CONFLICT,
    PaymentCode.PAYMENT_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    PaymentCode.SUBSCRIPTION_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    PaymentCode.GATEWAY_CHARGE_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    PaymentCode.INVALID_STATE: http_status.HTTP_409_CONFLICT,
    PaymentCode.ALREADY_REFUNDED: http_status.HTTP_409_CONFLICT,
    PaymentCode.REFUND_EXCEEDS_BALANCE: http_status.HTTP_409_CONFLICT,
    # 网关凭证错误是运维问题，不应暴露为客户端 401
    PaymentCode.AUTHENTICATION_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.TIMEOUT: http_status.HTTP_504_GATEWAY_TIMEOUT,
    PaymentCode.PROVIDER_ERROR: http_status.HTTP_502_BAD_GATEWAY,
}

_CODE_BY_HTTP_STATUS = {
    401: BusinessCode.UNAUTHORIZED,
    403: BusinessCode.FORBIDDEN,
    404: BusinessCode.NOT_FOUND,
    503: BusinessCode.SERVICE_UNAVAILABLE,
}


def business_code_to_http_status(code: int) -> int:
    """根据业务码映射HTTP状态码（默认400）"""
    return _HTTP_STATUS_BY_CODE.get(code, http_status.HTTP_400_BAD_REQUEST)


def _request_id(request: Request) -> str:
    return getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())


def register_exception_handlers(app: FastAPI):
    """注册全局异常处理器"""

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        request_id = _request_id(request)
        status_code = business_code_to_http_status(exc.code)
        # 网关与系统错误记 error，客户端可纠正的错误记 info
        log = logger.error if status_code >= 500 else logger.info
        log("business_exception", request_id=request_id, status_code=status_code, **exc.log_context())
        response = exception_response(exc, request_id)
        return JSONResponse(status_code=status_code, content=response.model_dump(mode='json'))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", [])[1:])

        # 不回显 input：请求体里可能有卡号
        response = error_response(
            code=PaymentCode.INVALID_REQUEST,
            message=f"Validation failed: {first_error.get('msg', 'unknown')}",
            error_type="InvalidRequest",
            details={
                "errors": [
                    {"loc": [str(part) for part in e.get("loc", ())], "msg": e.get("msg"), "type": e.get("type")}
                    for e in errors
                ]
            },
            field=field,
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=response.model_dump(mode='json')
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        response = error_response(
            code=_CODE_BY_HTTP_STATUS.get(exc.status_code, BusinessCode.SYSTEM_ERROR),
            message=str(exc.detail),
            error_type="HTTPError",
            details={"status_code": exc.status_code},
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=response.model_dump(mode='json'),
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        request_id = _request_id(request)
        logger.error(
            "database_error",
            request_id=request_id,
            error_type=type(exc).__name__,
            exc_info=True,
        )
        response = error_response(
            code=BusinessCode.DATABASE_ERROR,
            message="Database error",
            error_type="DatabaseError",
            request_id=request_id,
        )
        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(mode='json')
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        request_id = _request_id(request)

        # 仅调试模式返回堆栈
        details = None
        if app.debug:
            details = {
                "exception": str(exc),
                "traceback": traceback.format_exc()
            }

        logger.error(
            "unhandled_exception",
            request_id=request_id,
            error=str(exc),
            exc_info=True,
        )
        response = error_response(
            code=BusinessCode.SYSTEM_ERROR,
            message="Internal server error",
            error_type="SystemError",
            details=details,
            request_id=request_id,
        )
        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(mode='json')
        )

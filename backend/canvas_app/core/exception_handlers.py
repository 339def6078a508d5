"""
전역 예외 처리기
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from canvas_app.core.config import settings
from canvas_app.core.exceptions import CanvasAppException, DatabaseError, ServiceUnavailableError
from canvas_app.core.responses import (
    create_error_response,
    create_validation_error_response,
    FieldError,
    StatusCode,
    ErrorCode
)
from canvas_app.services.logging_service import logging_service


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def canvas_exception_handler(request: Request, exc: CanvasAppException) -> JSONResponse:
    """사용자 정의 예외 처리기"""

    request_id = getattr(request.state, "request_id", None)
    user_id = getattr(request.state, "user_id", None)

    logging_service.log_error(
        error=exc,
        context="Canvas 사용자 정의 예외",
        user_id=user_id,
        request_id=request_id,
        method=request.method,
        url=str(request.url),
        error_code=exc.error_code,
        status_code=exc.status_code
    )

    # 권한/인증 에러는 보안 이벤트로도 기록
    if exc.status_code in [StatusCode.UNAUTHORIZED, StatusCode.FORBIDDEN]:
        logging_service.log_security_event(
            event_type="access_denied",
            description=f"접근 거부: {exc.message}",
            user_id=user_id,
            ip_address=_client_ip(request),
            severity="MEDIUM",
            error_code=exc.error_code,
            path=request.url.path
        )

    response_data = create_error_response(
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
        request_id=request_id
    )

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == StatusCode.UNAUTHORIZED else None
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(response_data),
        headers=headers
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """요청 바디/쿼리 검증 에러 처리기 (잘못된 op 페이로드 포함)"""

    request_id = getattr(request.state, "request_id", None)
    user_id = getattr(request.state, "user_id", None)

    field_errors = []
    for error in exc.errors():
        loc = error.get("loc", ())
        field = ".".join(str(part) for part in loc[1:]) if len(loc) > 1 else ".".join(str(part) for part in loc)
        field_errors.append(
            FieldError(
                field=field,
                message=str(error.get("msg", "")),
                value=jsonable_encoder(error.get("input"), custom_encoder={Exception: str}) if error.get("input") is not None else None
            )
        )

    logging_service.log_error(
        error=exc,
        context="요청 검증 실패",
        user_id=user_id,
        request_id=request_id,
        method=request.method,
        url=str(request.url),
        invalid_fields=[error.field for error in field_errors]
    )

    response_data = create_validation_error_response(
        field_errors,
        request_id=request_id
    )

    return JSONResponse(
        status_code=StatusCode.UNPROCESSABLE_ENTITY,
        content=jsonable_encoder(response_data)
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """저장소 에러 처리기 - 연결 불가는 503, 그 외는 500"""

    request_id = getattr(request.state, "request_id", None)
    user_id = getattr(request.state, "user_id", None)

    logging_service.log_error(
        error=exc,
        context="데이터베이스 에러",
        user_id=user_id,
        request_id=request_id,
        method=request.method,
        url=str(request.url)
    )

    if isinstance(exc, OperationalError):
        error = ServiceUnavailableError(
            "저장소에 연결할 수 없습니다. 잠시 후 다시 시도해주세요.",
            details={"retryable": True}
        )
    else:
        error = DatabaseError()

    response_data = create_error_response(
        message=error.message,
        error_code=error.error_code,
        details=error.details,
        request_id=request_id
    )

    return JSONResponse(
        status_code=error.status_code,
        content=jsonable_encoder(response_data)
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """일반 예외 처리기 (마지막 예외 처리기)"""

    request_id = getattr(request.state, "request_id", None)
    user_id = getattr(request.state, "user_id", None)

    logging_service.log_error(
        error=exc,
        context="예상치 못한 시스템 에러",
        user_id=user_id,
        request_id=request_id,
        method=request.method,
        url=str(request.url),
        user_agent=request.headers.get("user-agent", "")
    )

    logging_service.log_security_event(
        event_type="system_error",
        description=f"예상치 못한 시스템 에러: {type(exc).__name__}",
        user_id=user_id,
        ip_address=_client_ip(request),
        severity="HIGH",
        path=request.url.path,
        error_type=type(exc).__name__
    )

    # 개발 환경에서는 상세한 에러 정보 제공
    if settings.DEBUG:
        response_data = create_error_response(
            message=f"서버 내부 오류: {str(exc)}",
            error_code=ErrorCode.INTERNAL_SERVER_ERROR,
            details={
                "error_type": type(exc).__name__,
                "error_message": str(exc)
            },
            request_id=request_id
        )
    else:
        response_data = create_error_response(
            message="서버 내부 오류가 발생했습니다. 잠시 후 다시 시도해주세요.",
            error_code=ErrorCode.INTERNAL_SERVER_ERROR,
            request_id=request_id
        )

    return JSONResponse(
        status_code=StatusCode.INTERNAL_SERVER_ERROR,
        content=jsonable_encoder(response_data)
    )


async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Starlette HTTPException 처리기 (라우팅 404/405 등)"""

    request_id = getattr(request.state, "request_id", None)

    if exc.status_code == StatusCode.NOT_FOUND:
        message = "요청한 리소스를 찾을 수 없습니다"
        error_code = ErrorCode.RESOURCE_NOT_FOUND
    elif exc.status_code == StatusCode.METHOD_NOT_ALLOWED:
        message = "지원하지 않는 HTTP 메서드입니다"
        error_code = ErrorCode.GENERAL_ERROR
    else:
        message = str(exc.detail) if exc.detail else "요청을 처리할 수 없습니다"
        error_code = ErrorCode.GENERAL_ERROR

    response_data = create_error_response(
        message=message,
        error_code=error_code,
        request_id=request_id
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(response_data)
    )

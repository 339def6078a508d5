"""
API 응답 envelope

성공은 {success, message, data, timestamp, request_id},
실패는 {success=false, error_code, message, details, timestamp, request_id} 한 가지 형태로 통일한다.
요청 검증 실패도 같은 에러 형태이며 필드별 내용은 details.fields에 담긴다.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class APIResponse(BaseModel):
    success: bool = True
    message: str
    data: Optional[Any] = None
    timestamp: datetime = Field(default_factory=_utc_now)
    request_id: Optional[str] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error_code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=_utc_now)
    request_id: Optional[str] = None


class FieldError(BaseModel):
    """검증에 실패한 필드 하나 (field는 body.data.updates 같은 점 표기)"""

    field: str
    message: str
    value: Optional[Any] = None


def create_success_response(
    message: str = "요청이 처리되었습니다",
    data: Any = None,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    return APIResponse(message=message, data=data, request_id=request_id).model_dump()


def create_error_response(
    message: str,
    error_code: str = "GENERAL_ERROR",
    details: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    return ErrorResponse(
        error_code=error_code,
        message=message,
        details=details,
        request_id=request_id
    ).model_dump()


def create_validation_error_response(
    field_errors: List[FieldError],
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """요청 검증 실패 응답 (잘못된 op 페이로드 포함)"""
    return create_error_response(
        message="요청 데이터 검증에 실패했습니다",
        error_code=ErrorCode.VALIDATION_ERROR,
        details={"fields": [error.model_dump() for error in field_errors]},
        request_id=request_id
    )


class StatusCode:
    """예외 처리기가 분기하는 상태 코드"""

    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    UNPROCESSABLE_ENTITY = 422
    INTERNAL_SERVER_ERROR = 500


class ErrorCode:
    """예외 클래스 밖에서 만들어지는 에러 코드 (나머지는 core.exceptions에 정의)"""

    GENERAL_ERROR = "GENERAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

"""
사용자 정의 예외 클래스들
"""

from typing import Any, Dict, Optional


class CanvasAppException(Exception):
    """Canvas 백엔드 기본 예외 클래스"""

    def __init__(
        self,
        message: str,
        error_code: str = "GENERAL_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(CanvasAppException):
    """입력 검증 실패 (잘못된 op 페이로드 등)"""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=422,
            details={"field": field} if field else {},
            **kwargs
        )


class AuthenticationError(CanvasAppException):
    """인증 실패"""

    def __init__(self, message: str = "인증이 필요합니다", **kwargs):
        super().__init__(
            message=message,
            error_code="AUTHENTICATION_REQUIRED",
            status_code=401,
            **kwargs
        )


class AuthorizationError(CanvasAppException):
    """권한 부족 (Forbidden)"""

    def __init__(self, message: str = "권한이 부족합니다", **kwargs):
        super().__init__(
            message=message,
            error_code="INSUFFICIENT_PERMISSIONS",
            status_code=403,
            **kwargs
        )


class ResourceNotFoundError(CanvasAppException):
    """리소스를 찾을 수 없음"""

    def __init__(self, resource: str, resource_id: Optional[str] = None, **kwargs):
        message = f"{resource}을(를) 찾을 수 없습니다"
        if resource_id:
            message += f": {resource_id}"

        super().__init__(
            message=message,
            error_code="RESOURCE_NOT_FOUND",
            status_code=404,
            details={"resource": resource, "resource_id": resource_id},
            **kwargs
        )


class ConflictError(CanvasAppException):
    """리소스 충돌"""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code="RESOURCE_CONFLICT",
            status_code=409,
            **kwargs
        )


class RetryableError(CanvasAppException):
    """저장소 경합이 재시도 한도를 넘긴 경우 - 클라이언트가 같은 requestId로 재시도해야 함"""

    def __init__(self, message: str = "일시적인 경합으로 요청을 처리하지 못했습니다", attempts: Optional[int] = None, **kwargs):
        super().__init__(
            message=message,
            error_code="RETRYABLE_CONFLICT",
            status_code=503,
            details={"attempts": attempts, "retryable": True} if attempts else {"retryable": True},
            **kwargs
        )


class ServiceUnavailableError(CanvasAppException):
    """저장소에 연결할 수 없음"""

    def __init__(self, message: str = "저장소에 연결할 수 없습니다", **kwargs):
        super().__init__(
            message=message,
            error_code="SERVICE_UNAVAILABLE",
            status_code=503,
            **kwargs
        )


class DatabaseError(CanvasAppException):
    """데이터베이스 관련 오류"""

    def __init__(self, message: str = "데이터베이스 오류가 발생했습니다", **kwargs):
        super().__init__(
            message=message,
            error_code="DATABASE_ERROR",
            status_code=500,
            **kwargs
        )

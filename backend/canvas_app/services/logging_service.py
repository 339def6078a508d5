"""
통합 로깅 및 운영 이벤트 서비스

요청/응답, 에러, 보안 이벤트, 성능 메트릭과 함께
시퀀싱 이후 실패한 요소 반영(materialization drift)을 운영자 채널로 남긴다.
"""

import time
import traceback
from typing import Any, Dict, Optional, Union
from contextlib import asynccontextmanager
from functools import wraps

import structlog

# 구조화된 로거 설정
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)
operator_logger = structlog.get_logger("canvas_app.operator")


class LoggingService:
    """통합 로깅 서비스"""

    def log_request(
        self,
        method: str,
        url: str,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        **extra_data
    ):
        """HTTP 요청 로깅"""
        logger.info(
            "HTTP 요청",
            method=method,
            url=url,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            **extra_data
        )

    def log_response(
        self,
        method: str,
        url: str,
        status_code: int,
        response_time_ms: float,
        user_id: Optional[str] = None,
        **extra_data
    ):
        """HTTP 응답 로깅"""
        logger.info(
            "HTTP 응답",
            method=method,
            url=url,
            status_code=status_code,
            response_time_ms=response_time_ms,
            user_id=user_id,
            **extra_data
        )

    def log_error(
        self,
        error: Exception,
        context: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        **extra_data
    ):
        """에러 로깅"""
        logger.error(
            "시스템 에러",
            error_type=type(error).__name__,
            error_message=str(error),
            context=context,
            user_id=user_id,
            request_id=request_id,
            traceback=traceback.format_exc(),
            **extra_data
        )

    def log_security_event(
        self,
        event_type: str,
        description: str,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        severity: str = "INFO",
        **extra_data
    ):
        """보안 이벤트 로깅"""
        log_data = {
            "security_event_type": event_type,
            "description": description,
            "user_id": user_id,
            "ip_address": ip_address,
            "severity": severity,
            **extra_data
        }

        if severity in ["CRITICAL", "HIGH"]:
            logger.error("보안 이벤트 발생", **log_data)
        elif severity == "MEDIUM":
            logger.warning("보안 이벤트 발생", **log_data)
        else:
            logger.info("보안 이벤트 발생", **log_data)

    def log_performance_metric(
        self,
        metric_name: str,
        value: Union[int, float],
        unit: str = "ms",
        context: Optional[Dict[str, Any]] = None,
        **extra_data
    ):
        """성능 메트릭 로깅"""
        logger.info(
            "성능 메트릭",
            metric_name=metric_name,
            value=value,
            unit=unit,
            context=context or {},
            **extra_data
        )

    def log_materialization_failure(
        self,
        project_id: str,
        op_id: str,
        op_index: int,
        op_type: str,
        error: Exception,
        **extra_data
    ):
        """시퀀싱은 성공했지만 요소 반영이 실패한 경우

        작업은 로그에 남아 있으므로 reconcile 또는 다음 스냅샷 재구성으로 복구된다.
        방치하면 projection이 로그보다 뒤처지므로 운영자 채널에 남긴다.
        """
        operator_logger.error(
            "요소 반영 실패 - projection 지연",
            project_id=project_id,
            op_id=op_id,
            op_index=op_index,
            op_type=op_type,
            error_type=type(error).__name__,
            error_message=str(error),
            traceback=traceback.format_exc(),
            remediation="POST /projects/{id}/reconcile",
            **extra_data
        )

    def log_worker_run(self, worker: str, processed: int, succeeded: int, failed: int, **extra_data):
        """백그라운드 워커 배치 결과"""
        log_method = operator_logger.warning if failed else logger.info
        log_method(
            "워커 실행 완료",
            worker=worker,
            processed=processed,
            succeeded=succeeded,
            failed=failed,
            **extra_data
        )

    @asynccontextmanager
    async def timed_endpoint(self, operation_name: str, request_id: Optional[str] = None):
        """엔드포인트 실행 시간을 성능 메트릭으로 남긴다 (예외는 기록 후 그대로 전파)"""
        started = time.perf_counter()
        try:
            yield
        except Exception as e:
            logger.warning(
                "엔드포인트 실패",
                operation_name=operation_name,
                request_id=request_id,
                error_type=type(e).__name__,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise
        self.log_performance_metric(
            f"{operation_name}_duration",
            round((time.perf_counter() - started) * 1000, 2),
            request_id=request_id,
        )


logging_service = LoggingService()


def log_api_call(operation_name: str):
    """엔드포인트 실행 시간 기록 데코레이터 (request 인자가 있으면 request_id를 함께 남긴다)"""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            request = kwargs.get("request")
            request_id = getattr(request.state, "request_id", None) if request is not None else None
            async with logging_service.timed_endpoint(operation_name, request_id):
                return await func(*args, **kwargs)
        return wrapper
    return decorator

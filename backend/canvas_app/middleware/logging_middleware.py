"""
로깅 미들웨어
"""

import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from canvas_app.services.logging_service import logging_service

# 로그에 남기지 않는 헤더
SENSITIVE_HEADERS = {"authorization", "cookie"}


class LoggingMiddleware(BaseHTTPMiddleware):
    """HTTP 요청/응답 로깅 미들웨어"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # 클라이언트가 보낸 요청 ID를 이어받거나 새로 생성
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        client_ip = self._get_client_ip(request)

        logging_service.log_request(
            method=request.method,
            url=str(request.url),
            ip_address=client_ip,
            user_agent=request.headers.get("user-agent", ""),
            request_id=request_id,
            path=request.url.path,
            query_params=dict(request.query_params),
            headers={
                key: value for key, value in request.headers.items()
                if key.lower() not in SENSITIVE_HEADERS
            } if request.url.path.startswith("/api/") else {}
        )

        try:
            response = await call_next(request)

            response_time_ms = (time.time() - start_time) * 1000
            user_id = getattr(request.state, "user_id", None)

            logging_service.log_response(
                method=request.method,
                url=str(request.url),
                status_code=response.status_code,
                response_time_ms=response_time_ms,
                user_id=user_id,
                request_id=request_id,
                path=request.url.path
            )

            # 느린 요청 감지
            if response_time_ms > 1000:
                logging_service.log_performance_metric(
                    metric_name="slow_request",
                    value=response_time_ms,
                    unit="ms",
                    context={
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": response.status_code
                    },
                    request_id=request_id
                )

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            response_time_ms = (time.time() - start_time) * 1000

            logging_service.log_error(
                error=e,
                context="HTTP 요청 처리 중 에러 발생",
                user_id=getattr(request.state, "user_id", None),
                request_id=request_id,
                method=request.method,
                url=str(request.url),
                response_time_ms=response_time_ms,
                client_ip=client_ip
            )
            raise

    def _get_client_ip(self, request: Request) -> str:
        """클라이언트 IP 주소 추출"""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"

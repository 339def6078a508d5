"""
백엔드 로깅 유틸리티 - 환경별 로그 레벨 제어
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import json

from canvas_app.core.config import settings


class StructuredFormatter(logging.Formatter):
    """구조화된 JSON 로그 포맷터"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # 추가 컨텍스트가 있으면 포함
        if hasattr(record, 'context'):
            log_data['context'] = record.context

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ContextLogger:
    """컨텍스트 딕셔너리를 함께 남기는 로거 래퍼"""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def error(self, message: str, exc_info: Optional[BaseException] = None, context: Optional[Dict[str, Any]] = None):
        extra = {'context': context} if context else {}
        self.logger.error(message, exc_info=exc_info, extra=extra)

    def warning(self, message: str, context: Optional[Dict[str, Any]] = None):
        extra = {'context': context} if context else {}
        self.logger.warning(message, extra=extra)

    def info(self, message: str, context: Optional[Dict[str, Any]] = None):
        extra = {'context': context} if context else {}
        self.logger.info(message, extra=extra)

    def debug(self, message: str, context: Optional[Dict[str, Any]] = None):
        if not self.logger.isEnabledFor(logging.DEBUG):
            return
        extra = {'context': context} if context else {}
        self.logger.debug(message, extra=extra)


def setup_logging() -> logging.Logger:
    """로깅 시스템 초기 설정"""
    environment = settings.ENVIRONMENT

    if environment == 'production':
        log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    elif environment == 'staging':
        log_level = logging.INFO
    else:  # development, test
        log_level = logging.DEBUG

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # 기존 핸들러 제거
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    # 프로덕션 환경에서는 구조화된 로깅 사용
    if environment == 'production' or settings.LOG_FORMAT == 'json':
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # 노이지한 라이브러리들
    logging.getLogger('asyncio').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy').setLevel(logging.WARNING)
    logging.getLogger('aiosqlite').setLevel(logging.WARNING)
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> ContextLogger:
    """컨텍스트 로거 인스턴스 반환"""
    return ContextLogger(name)

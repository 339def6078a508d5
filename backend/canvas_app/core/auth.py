"""
인증 - Bearer JWT 검증
토큰 발급은 별도 인증 서비스 담당이며, 개발 환경에서는 Mock 인증 사용
"""

from typing import Any, Dict, Optional
from jose import JWTError, jwt

from canvas_app.core.config import settings


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """JWT 토큰 검증 (실패 시 None)"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except JWTError:
        return None


def get_mock_user() -> Dict[str, Any]:
    """Mock 사용자 (MOCK_AUTH_ENABLED일 때만 사용)"""
    return {
        "id": settings.MOCK_USER_ID,
        "is_active": True,
        "is_mock": True,
    }

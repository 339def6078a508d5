"""
시간 유틸리티 - 주입 가능한 시계

시퀀서, 스냅샷 매니저, 미디어 GC는 전역 "현재 시각" 대신 Clock을 주입받는다.
테스트에서는 ManualClock으로 시간을 직접 진행시킨다.
"""

from datetime import datetime, timezone, timedelta
from typing import Optional, Protocol


class Clock(Protocol):
    """현재 시각 제공자"""

    def now(self) -> datetime:
        ...


class SystemClock:
    """실제 UTC 시계"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """수동으로 진행시키는 시계 (테스트, 재처리 스크립트용)"""

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_utc(start) if start else datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        """timedelta 인자만큼 시간을 진행"""
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = ensure_utc(value)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """naive datetime은 UTC로 간주 (SQLite는 tzinfo를 저장하지 않음)"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


system_clock = SystemClock()

"""
미디어 blob 저장소

업로드 자체는 이 서비스의 범위가 아니며, GC가 blob을 지울 때만 사용한다.
"""

from pathlib import Path
from typing import Optional

import aiofiles.os

from canvas_app.core.config import settings
from canvas_app.utils.logger import get_logger

logger = get_logger(__name__)


class BlobStorage:
    """blob 삭제 인터페이스"""

    async def delete(self, storage_path: str) -> bool:
        raise NotImplementedError


class LocalBlobStorage(BlobStorage):
    """UPLOAD_DIR 아래 로컬 파일"""

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.UPLOAD_DIR).resolve()

    def resolve(self, storage_path: str) -> Path:
        """base_dir 밖을 가리키는 경로는 거부"""
        path = (self.base_dir / storage_path).resolve()
        if path != self.base_dir and self.base_dir not in path.parents:
            raise ValueError(f"업로드 디렉토리 밖의 경로입니다: {storage_path}")
        return path

    async def delete(self, storage_path: str) -> bool:
        """파일 삭제 (이미 없으면 False)"""
        path = self.resolve(storage_path)
        if not await aiofiles.os.path.exists(path):
            logger.debug("삭제할 blob이 이미 없음", context={"storage_path": storage_path})
            return False

        await aiofiles.os.remove(path)
        logger.info("blob 삭제 완료", context={"storage_path": storage_path})
        return True

"""
보상 윈도우 처리 마커 리포지토리

마커는 원장 적립이 커밋된 뒤에만 기록되며, 존재 여부가 "이미 지급됨"의
유일한 판단 기준입니다.
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from focusapi.models.processed_window import ProcessedWindow
from focusapi.repositories.base import BaseRepository
from focusapi.schemas.rewards import ProcessedWindowSchema

logger = logging.getLogger(__name__)


def make_window_id(user_id: str, window_start: int, window_end: int) -> str:
    return f"{user_id}_{window_start}_{window_end}"


class ProcessedWindowRepository(BaseRepository[ProcessedWindow, ProcessedWindowSchema]):
    def __init__(self, db: Session):
        super().__init__(ProcessedWindow, ProcessedWindowSchema, db)

    def is_processed(self, window_id: str) -> bool:
        self._ensure_clean_session()
        return self.db.get(ProcessedWindow, window_id) is not None

    def mark_processed(
        self,
        user_id: str,
        window_start: int,
        window_end: int,
        processed_at: int,
    ) -> bool:
        """마커 기록. 동시 제출로 이미 존재하면 False"""
        self._ensure_clean_session()
        marker = ProcessedWindow(
            window_id=make_window_id(user_id, window_start, window_end),
            user_id=user_id,
            window_start=window_start,
            window_end=window_end,
            processed_at=processed_at,
        )
        self.db.add(marker)
        try:
            self.db.commit()
            return True
        except IntegrityError:
            self.db.rollback()
            logger.info(f"Window {marker.window_id} was already marked")
            return False
        except Exception:
            self.db.rollback()
            raise

    def delete_processed_before(self, cutoff: int) -> int:
        """processed_at이 cutoff 이전인 마커 삭제, 삭제 수 반환"""
        self._ensure_clean_session()
        try:
            deleted = (
                self.db.query(ProcessedWindow)
                .filter(ProcessedWindow.processed_at < cutoff)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return int(deleted or 0)

"""
보상 윈도우 처리 마커

(user_id, window_start, window_end) 조합의 보상이 이미 지급되었음을 나타냅니다.
마커의 존재 여부가 "이미 지급됨"의 유일한 판단 기준입니다.
"""

from sqlalchemy import BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from focusapi.models.base import BaseModel


class ProcessedWindow(BaseModel):
    __tablename__ = "processed_windows"
    __table_args__ = (Index("idx_processed_windows_processed_at", "processed_at"),)

    # 형식: "{user_id}_{window_start}_{window_end}"
    window_id: Mapped[str] = mapped_column(String(300), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    window_start: Mapped[int] = mapped_column(BigInteger, nullable=False)
    window_end: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # epoch ms
    processed_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

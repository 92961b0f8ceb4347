"""
사용자 토큰 잔액 데이터 모델

사용자당 하나의 잔액 레코드가 존재하며, 잔액/잠금 앱 목록/임시 해제 세션이
한 레코드에 함께 저장되며, 잔액 차감과 세션 생성은
하나의 원자적 갱신으로 기록됩니다.

동시성:
- version 컬럼을 SQLAlchemy version_id_col로 사용 (낙관적 동시성 제어)
- UPDATE ... WHERE version = :읽은값 형태로 기록되어, 다른 요청이 먼저
  커밋한 경우 StaleDataError가 발생하고 호출 측에서 재시도합니다
"""

from typing import List, Optional

from sqlalchemy import BigInteger, CheckConstraint, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from focusapi.models.base import BaseModel


class UserBalance(BaseModel):
    __tablename__ = "user_balances"
    __table_args__ = (
        CheckConstraint("tokens_balance >= 0", name="ck_user_balances_non_negative"),
    )

    # 외부 인증 시스템이 발급한 사용자 ID
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    # 사용 가능한 토큰 잔액 - 절대 음수가 될 수 없음
    tokens_balance: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    # 현재 차단 대상 패키지 목록 (집합으로 취급)
    locked_apps: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)

    # 임시 해제 세션 목록: [{package_name, unlocked_at, expires_at}, ...]
    unlock_sessions: Mapped[List[dict]] = mapped_column(
        JSON, default=list, nullable=False
    )

    # 마지막으로 선택한 MMF (참고용)
    mmf_preference: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # 마지막 기록 시각 (epoch ms)
    updated_at: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    # 낙관적 동시성 버전 - 모든 갱신마다 1씩 증가
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # 차단 서비스에 마지막으로 전달 성공한 version (0 = 전달 이력 없음)
    # version을 올리지 않도록 ORM flush가 아닌 테이블 UPDATE로만 갱신
    synced_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return (
            f"<UserBalance(user_id={self.user_id}, balance={self.tokens_balance}, "
            f"version={self.version}, synced_version={self.synced_version})>"
        )

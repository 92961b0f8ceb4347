"""
토큰 거래 원장 데이터 모델

잔액에 영향을 주는 모든 이벤트가 이 테이블에 기록됩니다.

원칙:
1. 불변성(Immutable): 한번 생성된 레코드는 수정/삭제되지 않음
2. 완전성(Complete): 잔액 변경 1회당 정확히 1개의 레코드
3. 정합성(Integrity): balance 필드에 거래 직후 잔액을 저장하여 재생 없이 감사 가능
4. 순서(Ordering): id는 커밋 순서를 따르므로 timestamp가 같아도 전순서가 보장됨
"""

import enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import UniqueConstraint

from focusapi.models.base import BaseModel


class TransactionType(str, enum.Enum):
    REWARD = "reward"
    UNLOCK = "unlock"
    PURCHASE = "purchase"
    INVESTMENT = "investment"
    WITHDRAWAL = "withdrawal"


class TransactionEntry(BaseModel):
    __tablename__ = "transactions"
    __table_args__ = (
        # 호출자가 전달한 request_id 기반 중복 처리 방지
        UniqueConstraint("user_id", "request_id", name="uq_transactions_user_request"),
        Index("idx_transactions_user_id", "user_id", "id"),
    )

    # sqlite에서는 INTEGER PRIMARY KEY만 자동 증가됨
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("user_balances.user_id"), nullable=False
    )
    type: Mapped[TransactionType] = mapped_column(
        Enum(
            TransactionType,
            native_enum=False,
            length=20,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
    )

    # 양수 = 적립, 음수 = 차감
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # 거래 직후 잔액 스냅샷
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # epoch ms
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # 거래 유형별 부가 정보 (앱 패키지, 펀드 ID, 윈도우 구간 등)
    details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    # 호출자 요청 ID 또는 "window:{window_id}" (보상 윈도우 중복 적립 방지)
    request_id: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

import enum
from typing import Optional

from sqlalchemy import BigInteger, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from focusapi.models.base import BaseModel


class InvestmentPosition(BaseModel):
    """MMF 투자 기록 - 추가만 가능, 순 포지션은 펀드별 합산으로 계산"""

    __tablename__ = "investments"
    __table_args__ = (Index("idx_investments_user_fund", "user_id", "mmf_id"),)

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("user_balances.user_id"), nullable=False
    )
    mmf_id: Mapped[str] = mapped_column(String(128), nullable=False)
    mmf_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    units: Mapped[float] = mapped_column(Float, nullable=False)
    unit_price: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # 외부 결제로 조달한 경우 결제 참조번호
    payment_reference: Mapped[Optional[str]] = mapped_column(
        String(128), nullable=True
    )


class FundingSource(str, enum.Enum):
    BALANCE = "balance"
    EXTERNAL = "external"


class MoneyMarketFund(BaseModel):
    """투자 가능한 MMF 카탈로그 (읽기 전용)"""

    __tablename__ = "mmfs"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    unit_price: Mapped[float] = mapped_column(Float, nullable=False)
    rate_percent: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    min_investment: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

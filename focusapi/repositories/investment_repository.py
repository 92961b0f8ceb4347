from typing import Dict, List

from sqlalchemy import asc, desc, func
from sqlalchemy.orm import Session

from focusapi.models.investment import InvestmentPosition, MoneyMarketFund
from focusapi.repositories.base import BaseRepository
from focusapi.schemas.investment import FundResponse, InvestmentPositionResponse


class InvestmentRepository(
    BaseRepository[InvestmentPosition, InvestmentPositionResponse]
):
    """투자 기록 조회 - 쓰기는 원장 트랜잭션(LedgerUnit.add) 안에서만 수행"""

    def __init__(self, db: Session):
        super().__init__(InvestmentPosition, InvestmentPositionResponse, db)

    def list_by_user(self, user_id: str) -> List[InvestmentPositionResponse]:
        """사용자 투자 기록 (최신순)"""
        return self.find_all(
            filters={"user_id": user_id},
            order_by=desc(InvestmentPosition.id),
        )

    def list_by_fund(
        self, user_id: str, mmf_id: str
    ) -> List[InvestmentPositionResponse]:
        return self.find_all(
            filters={"user_id": user_id, "mmf_id": mmf_id},
            order_by=desc(InvestmentPosition.id),
        )

    def total_invested(self, user_id: str) -> int:
        self._ensure_clean_session()
        total = (
            self.db.query(func.coalesce(func.sum(InvestmentPosition.amount), 0))
            .filter(InvestmentPosition.user_id == user_id)
            .scalar()
        )
        return int(total or 0)

    def units_by_fund(self, user_id: str) -> Dict[str, float]:
        """펀드별 보유 좌수 합계"""
        self._ensure_clean_session()
        rows = (
            self.db.query(InvestmentPosition.mmf_id, func.sum(InvestmentPosition.units))
            .filter(InvestmentPosition.user_id == user_id)
            .group_by(InvestmentPosition.mmf_id)
            .all()
        )
        return {mmf_id: float(units or 0.0) for mmf_id, units in rows}


class FundRepository(BaseRepository[MoneyMarketFund, FundResponse]):
    """MMF 카탈로그 (읽기 전용)"""

    def __init__(self, db: Session):
        super().__init__(MoneyMarketFund, FundResponse, db)

    def list_funds(self) -> List[FundResponse]:
        return self.find_all(order_by=asc(MoneyMarketFund.id))

    def get_fund(self, mmf_id: str):
        return self.get_by_field("id", mmf_id)

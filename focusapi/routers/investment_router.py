from typing import List

from fastapi import APIRouter, Depends

from focusapi.core.auth_middleware import get_current_user_id
from focusapi.deps import get_investment_service
from focusapi.schemas.investment import (
    FundResponse,
    InvestmentListResponse,
    InvestmentSummaryResponse,
    InvestRequest,
    InvestResponse,
)
from focusapi.services.investment_service import InvestmentService

router = APIRouter(tags=["investments"])


@router.get("/funds", response_model=List[FundResponse])
def list_funds(
    investment_service: InvestmentService = Depends(get_investment_service),
) -> List[FundResponse]:
    """투자 가능한 MMF 목록"""
    return investment_service.list_funds()


@router.post("/investments", response_model=InvestResponse)
def invest(
    request: InvestRequest,
    user_id: str = Depends(get_current_user_id),
    investment_service: InvestmentService = Depends(get_investment_service),
) -> InvestResponse:
    """
    MMF 투자

    payment_reference가 없으면 잔액에서 차감, 있으면 외부 결제 자금으로 기록합니다.
    """
    return investment_service.invest(
        user_id,
        request.mmf_id,
        request.mmf_name,
        request.token_amount,
        request.unit_price,
        payment_reference=request.payment_reference,
        request_id=request.request_id,
    )


@router.get("/investments", response_model=InvestmentListResponse)
def get_my_investments(
    user_id: str = Depends(get_current_user_id),
    investment_service: InvestmentService = Depends(get_investment_service),
) -> InvestmentListResponse:
    positions = investment_service.get_positions(user_id)
    return InvestmentListResponse(
        positions=positions,
        total_invested=sum(p.amount for p in positions),
        units_by_fund=investment_service.get_units_by_fund(user_id),
    )


@router.get("/investments/summary", response_model=InvestmentSummaryResponse)
def get_my_investment_summary(
    user_id: str = Depends(get_current_user_id),
    investment_service: InvestmentService = Depends(get_investment_service),
) -> InvestmentSummaryResponse:
    return investment_service.get_summary(user_id)

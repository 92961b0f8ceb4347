from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from focusapi.models.investment import FundingSource


class InvestRequest(BaseModel):
    """MMF 투자 요청"""

    mmf_id: str = Field(..., min_length=1, max_length=128, description="펀드 ID")
    mmf_name: str = Field(..., min_length=1, max_length=255, description="펀드 이름")
    token_amount: int = Field(..., description="투자 토큰 수")
    unit_price: float = Field(..., description="현재 기준가")
    payment_reference: Optional[str] = Field(
        None, max_length=128, description="외부 결제 참조번호 (있으면 잔액 차감 없음)"
    )
    request_id: Optional[str] = Field(None, max_length=128, description="요청 ID")


class InvestResponse(BaseModel):
    """MMF 투자 결과"""

    success: bool = Field(..., description="성공 여부")
    investment_id: Optional[int] = Field(None, description="투자 기록 ID")
    units: float = Field(0.0, description="매수 좌수")
    new_balance: int = Field(..., description="처리 후 잔액")
    funding_source: Optional[FundingSource] = Field(None, description="자금 출처")
    message: str = Field(..., description="응답 메시지")
    error_code: Optional[str] = Field(None, description="실패 코드")


class WithdrawRequest(BaseModel):
    """토큰 출금 요청"""

    amount: int = Field(..., description="출금 토큰 수")
    payout_reference: str = Field(..., min_length=1, max_length=128, description="출금 참조번호")
    request_id: Optional[str] = Field(None, max_length=128, description="요청 ID")


class WithdrawResponse(BaseModel):
    """토큰 출금 결과"""

    success: bool = Field(..., description="성공 여부")
    new_balance: int = Field(..., description="처리 후 잔액")
    message: str = Field(..., description="응답 메시지")
    error_code: Optional[str] = Field(None, description="실패 코드")


class PurchaseRequest(BaseModel):
    """외부 결제를 통한 토큰 구매 요청"""

    token_amount: int = Field(..., description="구매 토큰 수")
    destination: str = Field(..., min_length=1, max_length=64, description="결제 수단 (전화번호 등)")
    request_id: Optional[str] = Field(None, max_length=128, description="요청 ID")


class PurchaseResponse(BaseModel):
    """토큰 구매 결과"""

    success: bool = Field(..., description="성공 여부")
    new_balance: int = Field(..., description="처리 후 잔액")
    payment_reference: Optional[str] = Field(None, description="결제 참조번호")
    message: str = Field(..., description="응답 메시지")
    error_code: Optional[str] = Field(None, description="실패 코드")


class InvestmentPositionResponse(BaseModel):
    """투자 기록"""

    id: int = Field(..., description="투자 기록 ID")
    user_id: str = Field(..., description="사용자 ID")
    mmf_id: str = Field(..., description="펀드 ID")
    mmf_name: str = Field(..., description="펀드 이름")
    amount: int = Field(..., description="투자 토큰 수")
    units: float = Field(..., description="매수 좌수")
    unit_price: float = Field(..., description="매수 기준가")
    timestamp: int = Field(..., description="투자 시각 (epoch ms)")
    payment_reference: Optional[str] = Field(None, description="외부 결제 참조번호")

    class Config:
        from_attributes = True


class InvestmentListResponse(BaseModel):
    positions: List[InvestmentPositionResponse] = Field(..., description="투자 기록 (최신순)")
    total_invested: int = Field(..., description="총 투자 토큰")
    units_by_fund: Dict[str, float] = Field(..., description="펀드별 보유 좌수")


class InvestmentSummaryResponse(BaseModel):
    """투자 요약 통계"""

    total_invested: int = Field(..., description="총 투자 토큰")
    investment_count: int = Field(..., description="투자 횟수")
    unique_funds: int = Field(..., description="투자한 펀드 수")
    average_investment: float = Field(..., description="평균 투자 토큰")


class FundResponse(BaseModel):
    """MMF 카탈로그 항목"""

    id: str = Field(..., description="펀드 ID")
    name: str = Field(..., description="펀드 이름")
    description: str = Field("", description="설명")
    unit_price: float = Field(..., description="기준가")
    rate_percent: float = Field(..., description="연 수익률 (%)")
    min_investment: int = Field(..., description="최소 투자 토큰")

    class Config:
        from_attributes = True

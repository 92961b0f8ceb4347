"""
지갑 API 라우터

사용자용 엔드포인트:
- GET /wallet/balance: 내 토큰 잔액 조회
- GET /wallet/transactions: 내 거래 내역 (최신순, 유형 필터)
- GET /wallet/integrity: 내 원장 정합성 검증
- POST /wallet/withdrawals: 토큰 출금
- POST /wallet/purchases: 외부 결제로 토큰 구매

인증:
- 모든 엔드포인트는 게이트웨이가 전달한 사용자 ID 헤더 필요
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from focusapi.core.auth_middleware import get_current_user_id
from focusapi.deps import get_investment_service, get_ledger_service
from focusapi.models.transaction import TransactionType
from focusapi.schemas.investment import (
    PurchaseRequest,
    PurchaseResponse,
    WithdrawRequest,
    WithdrawResponse,
)
from focusapi.schemas.ledger import (
    BalanceResponse,
    LedgerIntegrityResponse,
    TransactionHistoryResponse,
)
from focusapi.services.investment_service import InvestmentService
from focusapi.services.ledger_service import LedgerService

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("/balance", response_model=BalanceResponse)
def get_my_balance(
    user_id: str = Depends(get_current_user_id),
    ledger_service: LedgerService = Depends(get_ledger_service),
) -> BalanceResponse:
    """내 토큰 잔액 조회"""
    return ledger_service.get_balance(user_id)


@router.get("/transactions", response_model=TransactionHistoryResponse)
def get_my_transactions(
    limit: int = Query(50, ge=1, le=100, description="페이지 크기"),
    offset: int = Query(0, ge=0, description="오프셋"),
    tx_type: Optional[TransactionType] = Query(None, alias="type", description="거래 유형"),
    user_id: str = Depends(get_current_user_id),
    ledger_service: LedgerService = Depends(get_ledger_service),
) -> TransactionHistoryResponse:
    """
    내 거래 내역 조회

    Returns:
        TransactionHistoryResponse: 거래 내역 및 페이징 정보
        - entries: 유형별 metadata를 갖는 거래 목록 (최신순)
        - has_next: 다음 페이지 존재 여부
    """
    return ledger_service.get_transactions(
        user_id, limit=limit, offset=offset, tx_type=tx_type
    )


@router.get("/integrity", response_model=LedgerIntegrityResponse)
def verify_my_ledger(
    user_id: str = Depends(get_current_user_id),
    ledger_service: LedgerService = Depends(get_ledger_service),
) -> LedgerIntegrityResponse:
    """거래 합계, 최신 스냅샷, 잔액 레코드가 일치하는지 검증"""
    return ledger_service.verify_integrity(user_id)


@router.post("/withdrawals", response_model=WithdrawResponse)
def withdraw_tokens(
    request: WithdrawRequest,
    user_id: str = Depends(get_current_user_id),
    investment_service: InvestmentService = Depends(get_investment_service),
) -> WithdrawResponse:
    """토큰 출금 - 잔액 부족 시 success=False"""
    return investment_service.withdraw(
        user_id,
        request.amount,
        request.payout_reference,
        request_id=request.request_id,
    )


@router.post("/purchases", response_model=PurchaseResponse)
def purchase_tokens(
    request: PurchaseRequest,
    user_id: str = Depends(get_current_user_id),
    investment_service: InvestmentService = Depends(get_investment_service),
) -> PurchaseResponse:
    """
    외부 결제로 토큰 구매

    HTTP Status:
        200: 처리 완료 (결제 거절 시 success=False)
        503: 결제 게이트웨이 연결 실패
    """
    return investment_service.purchase_tokens(
        user_id,
        request.token_amount,
        request.destination,
        request_id=request.request_id,
    )

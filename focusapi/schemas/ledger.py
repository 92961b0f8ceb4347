from pydantic import BaseModel, Field, TypeAdapter
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, Union

from focusapi.models.transaction import TransactionType


# ============================================================================
# 원장 연산 (Credit / Debit)
# ============================================================================


class Credit(BaseModel):
    """잔액 적립 연산"""

    kind: Literal["credit"] = "credit"
    amount: int = Field(..., description="적립할 토큰 수 (양수)")
    tx_type: TransactionType = Field(..., description="거래 유형")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="유형별 부가 정보")


class Debit(BaseModel):
    """잔액 차감 연산

    잔액은 음수가 될 수 없으므로 min_balance_check는 경고 로그 여부만 바꾼다.
    """

    kind: Literal["debit"] = "debit"
    amount: int = Field(..., description="차감할 토큰 수 (양수)")
    tx_type: TransactionType = Field(..., description="거래 유형")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="유형별 부가 정보")
    min_balance_check: bool = Field(
        True,
        description=(
            "참고용 플래그. 잔액을 넘는 차감은 값과 무관하게 BALANCE_001로 거부되며, "
            "False이면 거부 전에 경고 로그를 남긴다"
        ),
    )


LedgerOperation = Annotated[Union[Credit, Debit], Field(discriminator="kind")]


class LedgerResult(BaseModel):
    """원장 연산 결과"""

    success: bool = Field(..., description="성공 여부")
    transaction_id: Optional[int] = Field(None, description="거래 ID")
    amount: int = Field(..., description="부호 있는 변동량")
    balance: int = Field(..., description="거래 후 잔액")
    message: str = Field(..., description="응답 메시지")
    idempotent_replay: bool = Field(False, description="기존 request_id 결과 재사용 여부")

    class Config:
        from_attributes = True


# ============================================================================
# 거래 내역 - 유형별 메타데이터를 갖는 태그드 유니온
# ============================================================================


class RewardMetadata(BaseModel):
    minutes: int = Field(..., description="측정된 사용 시간 (분)")
    window_start: int = Field(..., description="윈도우 시작 (epoch ms)")
    window_end: int = Field(..., description="윈도우 종료 (epoch ms)")


class UnlockMetadata(BaseModel):
    app_package: str = Field(..., description="해제한 앱 패키지")
    app_name: str = Field("", description="앱 표시 이름")


class PurchaseMetadata(BaseModel):
    payment_reference: str = Field(..., description="결제 참조번호")
    destination: str = Field("", description="결제 수단 (예: 전화번호)")


class InvestmentMetadata(BaseModel):
    mmf_id: str = Field(..., description="펀드 ID")
    mmf_name: str = Field(..., description="펀드 이름")
    units: float = Field(..., description="매수 좌수")
    investment_id: Optional[int] = Field(None, description="투자 기록 ID")
    payment_reference: Optional[str] = Field(None, description="외부 결제 참조번호")


class WithdrawalMetadata(BaseModel):
    payout_reference: str = Field(..., description="출금 참조번호")


# 기록 시점 검증에 사용. 조회 시 태그드 유니온과 같은 모델이어야 함
TRANSACTION_METADATA_MODELS: Dict[TransactionType, Type[BaseModel]] = {
    TransactionType.REWARD: RewardMetadata,
    TransactionType.UNLOCK: UnlockMetadata,
    TransactionType.PURCHASE: PurchaseMetadata,
    TransactionType.INVESTMENT: InvestmentMetadata,
    TransactionType.WITHDRAWAL: WithdrawalMetadata,
}


class _TransactionEntryBase(BaseModel):
    id: int = Field(..., description="거래 ID (커밋 순서)")
    user_id: str = Field(..., description="사용자 ID")
    amount: int = Field(..., description="부호 있는 변동량")
    balance: int = Field(..., description="거래 직후 잔액")
    timestamp: int = Field(..., description="거래 시각 (epoch ms)")
    request_id: Optional[str] = Field(None, description="호출자 요청 ID")


class RewardEntry(_TransactionEntryBase):
    type: Literal["reward"] = "reward"
    metadata: RewardMetadata


class UnlockEntry(_TransactionEntryBase):
    type: Literal["unlock"] = "unlock"
    metadata: UnlockMetadata


class PurchaseEntry(_TransactionEntryBase):
    type: Literal["purchase"] = "purchase"
    metadata: PurchaseMetadata


class InvestmentEntry(_TransactionEntryBase):
    type: Literal["investment"] = "investment"
    metadata: InvestmentMetadata


class WithdrawalEntry(_TransactionEntryBase):
    type: Literal["withdrawal"] = "withdrawal"
    metadata: WithdrawalMetadata


TransactionEntrySchema = Annotated[
    Union[RewardEntry, UnlockEntry, PurchaseEntry, InvestmentEntry, WithdrawalEntry],
    Field(discriminator="type"),
]

transaction_entry_adapter: TypeAdapter = TypeAdapter(TransactionEntrySchema)


class BalanceResponse(BaseModel):
    """토큰 잔액 응답"""

    user_id: str = Field(..., description="사용자 ID")
    balance: int = Field(..., description="현재 토큰 잔액")
    updated_at: int = Field(..., description="마지막 기록 시각 (epoch ms)")


class TransactionHistoryResponse(BaseModel):
    """거래 내역 조회 응답"""

    balance: int = Field(..., description="현재 잔액")
    entries: List[TransactionEntrySchema] = Field(..., description="거래 목록 (최신순)")
    total_count: int = Field(..., description="전체 항목 수")
    has_next: bool = Field(..., description="다음 페이지 존재 여부")


class LedgerIntegrityResponse(BaseModel):
    """원장 정합성 검증 응답"""

    status: str = Field(..., description="검증 상태 (OK, MISMATCH)")
    user_id: str = Field(..., description="사용자 ID")
    calculated_balance: int = Field(..., description="거래 합계로 계산한 잔액")
    snapshot_balance: int = Field(..., description="최신 거래의 잔액 스냅샷")
    recorded_balance: int = Field(..., description="잔액 레코드의 현재 값")
    entry_count: int = Field(..., description="거래 수")
    verified_at: str = Field(..., description="검증 시간")

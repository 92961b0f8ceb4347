from typing import Optional, Union
import logging

from sqlalchemy.orm import Session

from focusapi.config import Settings
from focusapi.core.exceptions import (
    InsufficientBalanceError,
    ValidationError,
)
from focusapi.models.transaction import TransactionEntry, TransactionType
from focusapi.repositories.ledger_repository import LedgerRepository, LedgerUnit
from focusapi.schemas.ledger import (
    BalanceResponse,
    Credit,
    LedgerIntegrityResponse,
    LedgerOperation,
    LedgerResult,
    TransactionHistoryResponse,
)

logger = logging.getLogger(__name__)


def replay_result(entry: TransactionEntry, message: str = "Request already processed") -> LedgerResult:
    """이미 처리된 request_id의 원래 결과"""
    return LedgerResult(
        success=True,
        transaction_id=entry.id,
        amount=entry.amount,
        balance=entry.balance,
        message=message,
        idempotent_replay=True,
    )


class LedgerService:
    """잔액 원장 - 단일 적립/차감 연산과 원장 조회"""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.ledger_repo = LedgerRepository(
            db,
            max_retries=settings.LEDGER_MAX_RETRIES,
            backoff_ms=settings.LEDGER_RETRY_BACKOFF_MS,
        )

    def apply_ledger_operation(
        self,
        user_id: str,
        operation: LedgerOperation,
        request_id: Optional[str] = None,
        now: Optional[int] = None,
    ) -> LedgerResult:
        """적립 또는 차감 1건 적용

        잔액 갱신과 거래 기록 1건이 하나의 커밋으로 처리됩니다.

        Raises:
            UserNotFoundError: 잔액 레코드 없음
            InvalidAmountError: amount가 양의 정수가 아님
            InsufficientBalanceError: 잔액 부족 (부분 차감 없음)
            TransientConflictError: 동시 수정 재시도 한도 초과
        """

        def mutate(unit: LedgerUnit) -> Union[LedgerResult, TransactionEntry]:
            existing = unit.find_request()
            if existing is not None:
                return replay_result(existing)

            if isinstance(operation, Credit):
                return unit.credit(operation.amount, operation.tx_type, operation.metadata)
            return unit.debit(
                operation.amount,
                operation.tx_type,
                operation.metadata,
                min_balance_check=operation.min_balance_check,
            )

        try:
            outcome = self.ledger_repo.run_atomic(
                user_id, mutate, request_id=request_id, now=now
            )
        except InsufficientBalanceError:
            logger.info(
                f"Debit rejected for user {user_id}: insufficient balance for {operation.amount}"
            )
            raise

        if isinstance(outcome, LedgerResult):
            logger.info(f"Replayed request {request_id} for user {user_id}")
            return outcome

        logger.info(
            f"Ledger {operation.kind} for user {user_id}: amount={outcome.amount}, "
            f"balance={outcome.balance}, type={operation.tx_type.value}"
        )
        return LedgerResult(
            success=True,
            transaction_id=outcome.id,
            amount=outcome.amount,
            balance=outcome.balance,
            message="Transaction completed successfully",
        )

    def get_balance(self, user_id: str) -> BalanceResponse:
        return self.ledger_repo.get_balance(user_id)

    def get_transactions(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
        tx_type: Optional[TransactionType] = None,
    ) -> TransactionHistoryResponse:
        """거래 내역 최신순 조회

        Args:
            user_id: 사용자 ID
            limit: 페이지 크기 (최대 100)
            offset: 오프셋
            tx_type: 거래 유형 필터
        """
        if limit > 100:
            limit = 100

        balance = self.ledger_repo.get_balance(user_id)
        try:
            entries, total_count = self.ledger_repo.get_transactions(
                user_id, limit=limit, offset=offset, tx_type=tx_type
            )
        except Exception as e:
            logger.error(f"Failed to get transactions for user {user_id}: {str(e)}")
            raise ValidationError(f"Failed to retrieve transactions: {str(e)}")

        return TransactionHistoryResponse(
            balance=balance.balance,
            entries=entries,
            total_count=total_count,
            has_next=offset + len(entries) < total_count,
        )

    def verify_integrity(self, user_id: str) -> LedgerIntegrityResponse:
        result = self.ledger_repo.verify_integrity(user_id)
        logger.info(f"Integrity check for user {user_id}: {result.status}")
        return result

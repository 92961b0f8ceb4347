from typing import Dict, List, Optional
from sqlalchemy.orm import Session
import logging

from focusapi.config import Settings
from focusapi.core.exceptions import UserNotFoundError
from focusapi.models.investment import FundingSource, InvestmentPosition
from focusapi.models.transaction import TransactionEntry, TransactionType
from focusapi.providers.collaborators.payment import PaymentGatewayClient
from focusapi.repositories.investment_repository import (
    FundRepository,
    InvestmentRepository,
)
from focusapi.repositories.ledger_repository import LedgerRepository, LedgerUnit
from focusapi.schemas.investment import (
    FundResponse,
    InvestmentPositionResponse,
    InvestmentSummaryResponse,
    InvestResponse,
    PurchaseResponse,
    WithdrawResponse,
)

logger = logging.getLogger(__name__)

# 결제 수단(전화번호) 최소 길이
MIN_DESTINATION_LENGTH = 10


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class InvestmentService:
    """MMF 투자 / 토큰 출금 / 토큰 구매

    잔액을 사용하는 투자는 잔액 차감, 투자 기록, 거래 기록을 하나의 커밋으로
    처리합니다. 외부 결제는 원장 트랜잭션을 열기 전에 완료되어야 합니다.
    """

    def __init__(
        self,
        db: Session,
        settings: Settings,
        payment_client: PaymentGatewayClient,
    ):
        self.db = db
        self.settings = settings
        self.payment_client = payment_client
        self.ledger_repo = LedgerRepository(
            db,
            max_retries=settings.LEDGER_MAX_RETRIES,
            backoff_ms=settings.LEDGER_RETRY_BACKOFF_MS,
        )
        self.investment_repo = InvestmentRepository(db)
        self.fund_repo = FundRepository(db)

    # ------------------------------------------------------------------
    # 투자
    # ------------------------------------------------------------------

    def invest(
        self,
        user_id: str,
        mmf_id: str,
        mmf_name: str,
        token_amount: int,
        unit_price: float,
        payment_reference: Optional[str] = None,
        request_id: Optional[str] = None,
        now: Optional[int] = None,
    ) -> InvestResponse:
        """MMF 투자

        payment_reference가 없으면 잔액에서 차감하고 음수 거래로 기록합니다.
        있으면 호출자가 결제를 이미 확인한 것으로 보고, 잔액 변동 없이
        양수 거래로 기록합니다.

        Raises:
            UserNotFoundError: 잔액 레코드 없음
            TransientConflictError: 동시 수정 재시도 한도 초과
        """
        if not _is_positive_int(token_amount) or not unit_price or unit_price <= 0:
            logger.info(
                f"Invalid investment for user {user_id}: amount={token_amount}, unit_price={unit_price}"
            )
            return InvestResponse(
                success=False,
                new_balance=self._current_balance(user_id),
                message="Investment amount and unit price must be positive",
                error_code="AMOUNT_001",
            )

        units = token_amount / unit_price
        funding_source = (
            FundingSource.EXTERNAL if payment_reference else FundingSource.BALANCE
        )

        def mutate(unit: LedgerUnit):
            existing = unit.find_request()
            if existing is not None:
                return {"status": "replay", "entry": existing, "balance": existing.balance}

            if funding_source == FundingSource.BALANCE and unit.balance < token_amount:
                return {"status": "insufficient", "balance": unit.balance}

            position = unit.add(
                InvestmentPosition(
                    user_id=user_id,
                    mmf_id=mmf_id,
                    mmf_name=mmf_name,
                    amount=token_amount,
                    units=units,
                    unit_price=unit_price,
                    timestamp=unit.now,
                    payment_reference=payment_reference,
                )
            )
            # 투자 기록 id를 거래 메타데이터에 남기기 위해 먼저 flush
            unit.db.flush()

            metadata = {
                "mmf_id": mmf_id,
                "mmf_name": mmf_name,
                "units": units,
                "investment_id": position.id,
                "payment_reference": payment_reference,
            }
            if funding_source == FundingSource.BALANCE:
                unit.debit(token_amount, TransactionType.INVESTMENT, metadata)
            else:
                unit.record_external(token_amount, TransactionType.INVESTMENT, metadata)
                unit.record.mmf_preference = mmf_id
            return {"status": "ok", "position": position, "balance": unit.balance}

        outcome = self.ledger_repo.run_atomic(
            user_id, mutate, request_id=request_id, now=now
        )

        if outcome["status"] == "insufficient":
            logger.info(
                f"Investment rejected for user {user_id}: balance={outcome['balance']}, amount={token_amount}"
            )
            return InvestResponse(
                success=False,
                new_balance=outcome["balance"],
                message=(
                    f"Insufficient tokens. You need {token_amount} tokens "
                    f"but have {outcome['balance']}."
                ),
                error_code="BALANCE_001",
            )

        if outcome["status"] == "replay":
            return self._replay_response(outcome["entry"])

        position = outcome["position"]
        logger.info(
            f"User {user_id} invested {token_amount} tokens in {mmf_id} "
            f"({units:.4f} units, {funding_source.value}), balance={outcome['balance']}"
        )
        return InvestResponse(
            success=True,
            investment_id=position.id,
            units=units,
            new_balance=outcome["balance"],
            funding_source=funding_source,
            message=f"Successfully invested {token_amount} tokens in {mmf_name}",
        )

    def invest_with_payment(
        self,
        user_id: str,
        mmf_id: str,
        mmf_name: str,
        token_amount: int,
        unit_price: float,
        destination: str,
        request_id: Optional[str] = None,
    ) -> InvestResponse:
        """외부 결제 후 투자 - 결제는 원장 트랜잭션 전에 완료됨"""
        if not _is_positive_int(token_amount) or not unit_price or unit_price <= 0:
            return self.invest(user_id, mmf_id, mmf_name, token_amount, unit_price)

        if self.ledger_repo.get_record(user_id) is None:
            raise UserNotFoundError(user_id)

        # 이미 처리된 요청이면 재결제하지 않음
        if request_id:
            replay = self.ledger_repo.find_by_request_id(user_id, request_id)
            if replay is not None:
                logger.info(f"Replayed paid investment {request_id} for user {user_id}")
                return self._replay_response(replay)

        charge = self.payment_client.charge(
            user_id, token_amount, destination, idempotency_key=request_id
        )
        if not charge.success:
            return InvestResponse(
                success=False,
                new_balance=self._current_balance(user_id),
                message=charge.message,
                error_code="PAYMENT_001",
            )

        return self.invest(
            user_id,
            mmf_id,
            mmf_name,
            token_amount,
            unit_price,
            payment_reference=charge.reference,
            request_id=request_id,
        )

    # ------------------------------------------------------------------
    # 출금 / 구매
    # ------------------------------------------------------------------

    def withdraw(
        self,
        user_id: str,
        amount: int,
        payout_reference: str,
        request_id: Optional[str] = None,
        now: Optional[int] = None,
    ) -> WithdrawResponse:
        """토큰 출금 (투자 기록과 무관하게 잔액에서 차감)"""
        if not _is_positive_int(amount):
            return WithdrawResponse(
                success=False,
                new_balance=self._current_balance(user_id),
                message="Withdrawal amount must be positive",
                error_code="AMOUNT_001",
            )

        def mutate(unit: LedgerUnit):
            existing = unit.find_request()
            if existing is not None:
                return {"status": "replay", "balance": existing.balance}
            if unit.balance < amount:
                return {"status": "insufficient", "balance": unit.balance}
            unit.debit(
                amount,
                TransactionType.WITHDRAWAL,
                {"payout_reference": payout_reference},
            )
            return {"status": "ok", "balance": unit.balance}

        outcome = self.ledger_repo.run_atomic(
            user_id, mutate, request_id=request_id, now=now
        )

        if outcome["status"] == "insufficient":
            logger.info(
                f"Withdrawal rejected for user {user_id}: balance={outcome['balance']}, amount={amount}"
            )
            return WithdrawResponse(
                success=False,
                new_balance=outcome["balance"],
                message=f"Insufficient tokens. You have {outcome['balance']} tokens.",
                error_code="BALANCE_001",
            )

        if outcome["status"] == "ok":
            logger.info(
                f"User {user_id} withdrew {amount} tokens ({payout_reference}), balance={outcome['balance']}"
            )
        return WithdrawResponse(
            success=True,
            new_balance=outcome["balance"],
            message=(
                "Request already processed"
                if outcome["status"] == "replay"
                else f"Successfully withdrew {amount} tokens"
            ),
        )

    def purchase_tokens(
        self,
        user_id: str,
        token_amount: int,
        destination: str,
        request_id: Optional[str] = None,
        now: Optional[int] = None,
    ) -> PurchaseResponse:
        """외부 결제로 토큰 구매

        결제 승인 후 원장에 적립합니다. 결제 게이트웨이 호출은 재시도하지 않으며,
        연결 실패는 CollaboratorUnavailableError로 전파됩니다.
        """
        if not _is_positive_int(token_amount):
            return PurchaseResponse(
                success=False,
                new_balance=self._current_balance(user_id),
                message="Purchase amount must be positive",
                error_code="AMOUNT_001",
            )
        if not destination or len(destination) < MIN_DESTINATION_LENGTH:
            return PurchaseResponse(
                success=False,
                new_balance=self._current_balance(user_id),
                message="Invalid payment destination",
                error_code="VALIDATION_001",
            )

        record = self.ledger_repo.get_record(user_id)
        if record is None:
            raise UserNotFoundError(user_id)

        # 이미 처리된 요청이면 재결제하지 않음
        if request_id:
            replay = self.ledger_repo.find_by_request_id(user_id, request_id)
            if replay is not None:
                return PurchaseResponse(
                    success=True,
                    new_balance=replay.balance,
                    payment_reference=(replay.details or {}).get("payment_reference"),
                    message="Request already processed",
                )

        charge = self.payment_client.charge(
            user_id, token_amount, destination, idempotency_key=request_id
        )
        if not charge.success:
            return PurchaseResponse(
                success=False,
                new_balance=record.tokens_balance,
                message=charge.message,
                error_code="PAYMENT_001",
            )

        def mutate(unit: LedgerUnit):
            existing = unit.find_request()
            if existing is not None:
                return existing
            return unit.credit(
                token_amount,
                TransactionType.PURCHASE,
                {"payment_reference": charge.reference, "destination": destination},
            )

        entry = self.ledger_repo.run_atomic(
            user_id, mutate, request_id=request_id, now=now
        )
        logger.info(
            f"User {user_id} purchased {token_amount} tokens ({charge.reference}), balance={entry.balance}"
        )
        return PurchaseResponse(
            success=True,
            new_balance=entry.balance,
            payment_reference=charge.reference,
            message=f"Successfully purchased {token_amount} tokens",
        )

    def _current_balance(self, user_id: str) -> int:
        record = self.ledger_repo.get_record(user_id)
        if record is None:
            raise UserNotFoundError(user_id)
        return record.tokens_balance

    @staticmethod
    def _replay_response(entry: TransactionEntry) -> InvestResponse:
        """이미 처리된 투자 요청의 원래 결과"""
        details = entry.details or {}
        return InvestResponse(
            success=True,
            investment_id=details.get("investment_id"),
            units=details.get("units", 0.0),
            new_balance=entry.balance,
            message="Request already processed",
        )

    # ------------------------------------------------------------------
    # 조회 (실패 시 빈 값으로 응답)
    # ------------------------------------------------------------------

    def get_positions(self, user_id: str) -> List[InvestmentPositionResponse]:
        try:
            return self.investment_repo.list_by_user(user_id)
        except Exception as e:
            logger.error(f"Failed to get positions for user {user_id}: {str(e)}")
            return []

    def get_positions_by_fund(
        self, user_id: str, mmf_id: str
    ) -> List[InvestmentPositionResponse]:
        try:
            return self.investment_repo.list_by_fund(user_id, mmf_id)
        except Exception as e:
            logger.error(f"Failed to get positions for user {user_id}, fund {mmf_id}: {str(e)}")
            return []

    def get_total_invested(self, user_id: str) -> int:
        try:
            return self.investment_repo.total_invested(user_id)
        except Exception as e:
            logger.error(f"Failed to sum investments for user {user_id}: {str(e)}")
            return 0

    def get_units_by_fund(self, user_id: str) -> Dict[str, float]:
        try:
            return self.investment_repo.units_by_fund(user_id)
        except Exception as e:
            logger.error(f"Failed to get units for user {user_id}: {str(e)}")
            return {}

    def get_summary(self, user_id: str) -> InvestmentSummaryResponse:
        positions = self.get_positions(user_id)
        total = sum(p.amount for p in positions)
        count = len(positions)
        return InvestmentSummaryResponse(
            total_invested=total,
            investment_count=count,
            unique_funds=len({p.mmf_id for p in positions}),
            average_investment=(total / count) if count else 0.0,
        )

    def list_funds(self) -> List[FundResponse]:
        try:
            return self.fund_repo.list_funds()
        except Exception as e:
            logger.error(f"Failed to list funds: {str(e)}")
            return []

"""
원장 리포지토리 - 잔액 레코드와 거래 내역의 원자적 갱신

이 파일은 토큰 잔액에 영향을 주는 모든 쓰기의 유일한 통로입니다:
1. 사용자 단위 원자적 갱신 (run_atomic)
2. 낙관적 동시성 충돌 시 지수 백오프 재시도
3. request_id 기반 중복 요청 재생
4. 거래 내역 조회 / 정합성 검증

핵심 특징:
- 잔액 레코드는 version 컬럼 조건부로 UPDATE 되므로, 읽은 뒤 다른 요청이
  먼저 커밋하면 StaleDataError로 감지됩니다
- 잔액 변경 1회당 정확히 1개의 거래 내역이 같은 트랜잭션에서 추가됩니다
- 거래 내역의 balance 필드는 거래 직후 잔액입니다
"""

import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import asc, desc, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from focusapi.core.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    TransientConflictError,
    UserNotFoundError,
    ValidationError,
)
from focusapi.models.balance import UserBalance
from focusapi.models.transaction import TransactionEntry, TransactionType
from focusapi.repositories.base import BaseRepository
from focusapi.schemas.ledger import (
    BalanceResponse,
    LedgerIntegrityResponse,
    TRANSACTION_METADATA_MODELS,
    transaction_entry_adapter,
)
from focusapi.utils.timezone_utils import resolve_now, utc_now_str

logger = logging.getLogger(__name__)

R = TypeVar("R")


def _require_positive(amount: Any) -> int:
    # bool은 int의 하위 타입이므로 별도로 거른다
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(details={"amount": amount})
    return amount


def _require_metadata(
    tx_type: TransactionType, metadata: Optional[Dict[str, Any]]
) -> Dict[str, Any]:
    # 조회 시 유형별 모델로 역직렬화되므로 기록 전에 같은 모델로 확인한다
    details = metadata or {}
    try:
        TRANSACTION_METADATA_MODELS[TransactionType(tx_type)].model_validate(details)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid metadata for {TransactionType(tx_type).value} transaction",
            details={"errors": e.errors(include_url=False)},
        )
    return details


class LedgerUnit:
    """run_atomic 안에서 mutate 함수에 전달되는 작업 단위

    record는 이번 시도에서 읽은 잔액 레코드이며, credit/debit은 잔액 변경과
    거래 내역 추가를 함께 수행합니다. 커밋은 run_atomic이 담당합니다.
    """

    def __init__(
        self,
        db: Session,
        record: UserBalance,
        now: int,
        request_id: Optional[str] = None,
    ):
        self.db = db
        self.record = record
        self.now = now
        self.request_id = request_id
        self.entries: List[TransactionEntry] = []

    @property
    def balance(self) -> int:
        return self.record.tokens_balance

    def find_request(self) -> Optional[TransactionEntry]:
        """이미 처리된 request_id의 거래 내역 (없으면 None)"""
        if not self.request_id:
            return None
        return (
            self.db.query(TransactionEntry)
            .filter(
                TransactionEntry.user_id == self.record.user_id,
                TransactionEntry.request_id == self.request_id,
            )
            .first()
        )

    def _record_entry(
        self, tx_type: TransactionType, amount: int, details: Dict[str, Any]
    ) -> TransactionEntry:
        entry = TransactionEntry(
            user_id=self.record.user_id,
            type=tx_type,
            amount=amount,
            balance=self.record.tokens_balance,
            timestamp=self.now,
            details=details,
            request_id=self.request_id if not self.entries else None,
        )
        self.db.add(entry)
        self.entries.append(entry)
        self.touch()
        return entry

    def credit(
        self,
        amount: int,
        tx_type: TransactionType,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TransactionEntry:
        """잔액 적립 + 양수 거래 기록"""
        amount = _require_positive(amount)
        details = _require_metadata(tx_type, metadata)
        self.record.tokens_balance = self.record.tokens_balance + amount
        return self._record_entry(tx_type, amount, details)

    def debit(
        self,
        amount: int,
        tx_type: TransactionType,
        metadata: Optional[Dict[str, Any]] = None,
        min_balance_check: bool = True,
    ) -> TransactionEntry:
        """잔액 차감 + 음수 거래 기록

        min_balance_check를 끄더라도 잔액이 음수가 되는 차감은 거부됩니다.
        """
        amount = _require_positive(amount)
        details = _require_metadata(tx_type, metadata)
        current = self.record.tokens_balance
        if amount > current:
            if not min_balance_check:
                logger.warning(
                    f"Unchecked debit would overdraw user {self.record.user_id}: "
                    f"amount={amount}, balance={current}"
                )
            raise InsufficientBalanceError(
                details={"required": amount, "balance": current}
            )
        self.record.tokens_balance = current - amount
        return self._record_entry(tx_type, -amount, details)

    def record_external(
        self,
        amount: int,
        tx_type: TransactionType,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TransactionEntry:
        """잔액 변동 없이 외부 자금 유입을 양수 거래로 기록"""
        amount = _require_positive(amount)
        return self._record_entry(tx_type, amount, _require_metadata(tx_type, metadata))

    def add(self, instance: Any) -> Any:
        """같은 트랜잭션에 함께 커밋될 부수 레코드 추가"""
        self.db.add(instance)
        return instance

    def touch(self) -> None:
        self.record.updated_at = self.now


class LedgerRepository(BaseRepository[TransactionEntry, Any]):
    """
    원장 리포지토리 - 잔액 레코드와 거래 내역 관련 모든 데이터베이스 작업 처리

    주요 기능:
    1. 원자성 - 잔액 갱신과 거래 기록을 하나의 커밋으로 처리
    2. 동시성 - version 조건부 갱신 실패 시 재시도, 한도 초과 시 TransientConflictError
    3. 멱등성 - (user_id, request_id) 유니크 제약으로 중복 요청 감지
    4. 감사 추적 - 거래 내역은 추가만 가능
    """

    def __init__(
        self,
        db: Session,
        max_retries: int = 5,
        backoff_ms: int = 25,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(TransactionEntry, Any, db)
        self.max_retries = max(1, max_retries)
        self.backoff_ms = backoff_ms
        self._sleep = sleep

    def _to_schema(self, model_instance: Any):
        if model_instance is None:
            return None
        return transaction_entry_adapter.validate_python(
            {
                "id": model_instance.id,
                "user_id": model_instance.user_id,
                "type": TransactionType(model_instance.type).value,
                "amount": model_instance.amount,
                "balance": model_instance.balance,
                "timestamp": model_instance.timestamp,
                "request_id": model_instance.request_id,
                "metadata": model_instance.details or {},
            }
        )

    def _backoff(self, attempt: int) -> None:
        if self.backoff_ms <= 0:
            return
        delay_ms = self.backoff_ms * (2 ** (attempt - 1)) * random.uniform(0.5, 1.5)
        self._sleep(delay_ms / 1000)

    # ------------------------------------------------------------------
    # 쓰기
    # ------------------------------------------------------------------

    def run_atomic(
        self,
        user_id: str,
        mutate: Callable[[LedgerUnit], R],
        request_id: Optional[str] = None,
        now: Optional[int] = None,
    ) -> R:
        """
        사용자 잔액 레코드를 읽고 mutate를 적용한 뒤 version 조건부로 커밋

        Args:
            user_id: 대상 사용자 ID
            mutate: LedgerUnit을 받아 레코드를 수정하고 결과를 반환하는 함수.
                재시도 시 새로 읽은 레코드로 다시 호출되므로 부수효과가 없어야 함
            request_id: 중복 방지용 호출자 요청 ID
            now: 기록 시각 (epoch ms, 기본값 현재)

        Returns:
            mutate의 반환값

        Raises:
            UserNotFoundError: 잔액 레코드가 없음 (재시도 안 함)
            BaseAPIException: mutate에서 발생한 정책 오류 (롤백 후 그대로 전파)
            TransientConflictError: 재시도 한도 초과
        """
        for attempt in range(1, self.max_retries + 1):
            self._ensure_clean_session()
            timestamp = resolve_now(now)
            try:
                record = self.db.get(UserBalance, user_id, populate_existing=True)
                if record is None:
                    raise UserNotFoundError(user_id)

                unit = LedgerUnit(self.db, record, timestamp, request_id)
                result = mutate(unit)
                self.db.flush()
                self.db.commit()
                return result
            except (StaleDataError, IntegrityError) as e:
                self.db.rollback()
                logger.warning(
                    f"Ledger conflict for user {user_id} "
                    f"(attempt {attempt}/{self.max_retries}): {type(e).__name__}"
                )
                if attempt < self.max_retries:
                    self._backoff(attempt)
            except Exception:
                self.db.rollback()
                raise

        logger.error(
            f"Ledger retries exhausted for user {user_id} after {self.max_retries} attempts"
        )
        raise TransientConflictError(
            details={"user_id": user_id, "attempts": self.max_retries}
        )

    def mark_synced(self, user_id: str, version: int) -> bool:
        """차단 서비스에 전달한 version 기록

        테이블 수준 UPDATE라서 version 컬럼과 다른 요청의 조건부 갱신에 영향을 주지 않습니다.
        늦게 도착한 이전 version으로는 되돌리지 않습니다.
        """
        self._ensure_clean_session()
        table = UserBalance.__table__
        try:
            result = self.db.execute(
                update(table)
                .where(table.c.user_id == user_id, table.c.synced_version < version)
                .values(synced_version=version)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # 읽기
    # ------------------------------------------------------------------

    def get_record(self, user_id: str) -> Optional[UserBalance]:
        """잔액 레코드를 최신 상태로 조회"""
        self._ensure_clean_session()
        return self.db.get(UserBalance, user_id, populate_existing=True)

    def find_by_request_id(
        self, user_id: str, request_id: str
    ) -> Optional[TransactionEntry]:
        self._ensure_clean_session()
        return (
            self.db.query(TransactionEntry)
            .filter(
                TransactionEntry.user_id == user_id,
                TransactionEntry.request_id == request_id,
            )
            .first()
        )

    def get_balance(self, user_id: str) -> BalanceResponse:
        record = self.get_record(user_id)
        if record is None:
            raise UserNotFoundError(user_id)
        return BalanceResponse(
            user_id=record.user_id,
            balance=record.tokens_balance,
            updated_at=record.updated_at,
        )

    def get_transactions(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
        tx_type: Optional[TransactionType] = None,
    ) -> Tuple[List[Any], int]:
        """거래 내역 최신순 조회 - (항목, 전체 수)"""
        self._ensure_clean_session()
        query = self.db.query(TransactionEntry).filter(
            TransactionEntry.user_id == user_id
        )
        if tx_type is not None:
            query = query.filter(TransactionEntry.type == tx_type)

        total_count = query.count()
        rows = (
            query.order_by(desc(TransactionEntry.id)).offset(offset).limit(limit).all()
        )
        return [self._to_schema(row) for row in rows], total_count

    def get_transactions_in_range(
        self,
        user_id: str,
        start: int,
        end: int,
        tx_type: Optional[TransactionType] = None,
    ) -> List[Any]:
        """[start, end) 구간 거래 내역 (오래된 순)"""
        self._ensure_clean_session()
        query = self.db.query(TransactionEntry).filter(
            TransactionEntry.user_id == user_id,
            TransactionEntry.timestamp >= start,
            TransactionEntry.timestamp < end,
        )
        if tx_type is not None:
            query = query.filter(TransactionEntry.type == tx_type)
        return [self._to_schema(row) for row in query.order_by(asc(TransactionEntry.id))]

    def sum_amount(self, user_id: str, tx_type: TransactionType) -> int:
        """유형별 거래 금액 합계"""
        self._ensure_clean_session()
        total = (
            self.db.query(func.coalesce(func.sum(TransactionEntry.amount), 0))
            .filter(
                TransactionEntry.user_id == user_id,
                TransactionEntry.type == tx_type,
            )
            .scalar()
        )
        return int(total or 0)

    def verify_integrity(self, user_id: str) -> LedgerIntegrityResponse:
        """
        특정 사용자의 원장 정합성 검증

        검증 방식:
        1. 모든 거래의 amount 합계 계산
        2. 최신 거래의 balance 스냅샷과 비교
        3. 잔액 레코드의 현재 값과 비교

        외부 자금 투자(잔액 변동 없는 양수 기록)는 합계에서 제외합니다.
        """
        record = self.get_record(user_id)
        if record is None:
            raise UserNotFoundError(user_id)

        entries = (
            self.db.query(TransactionEntry)
            .filter(TransactionEntry.user_id == user_id)
            .order_by(asc(TransactionEntry.id))
            .all()
        )

        calculated_balance = sum(
            entry.amount
            for entry in entries
            if not (
                entry.type == TransactionType.INVESTMENT and entry.amount > 0
            )
        )
        snapshot_balance = entries[-1].balance if entries else 0
        recorded_balance = record.tokens_balance

        status = (
            "OK"
            if calculated_balance == snapshot_balance == recorded_balance
            else "MISMATCH"
        )
        if status != "OK":
            logger.warning(
                f"Ledger mismatch for user {user_id}: calculated={calculated_balance}, "
                f"snapshot={snapshot_balance}, recorded={recorded_balance}"
            )

        return LedgerIntegrityResponse(
            status=status,
            user_id=user_id,
            calculated_balance=calculated_balance,
            snapshot_balance=snapshot_balance,
            recorded_balance=recorded_balance,
            entry_count=len(entries),
            verified_at=utc_now_str(),
        )

    def provision_user(
        self, user_id: str, initial_balance: int = 0, now: Optional[int] = None
    ) -> UserBalance:
        """잔액 레코드 생성 (사용자 생성은 외부 시스템 책임, 테스트/초기화용)"""
        self._ensure_clean_session()
        record = UserBalance(
            user_id=user_id,
            tokens_balance=initial_balance,
            locked_apps=[],
            unlock_sessions=[],
            updated_at=resolve_now(now),
        )
        self.db.add(record)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return record

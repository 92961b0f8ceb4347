import pytest
from unittest.mock import Mock, patch
from sqlalchemy.orm.exc import StaleDataError

from focusapi.core.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    TransientConflictError,
    UserNotFoundError,
    ValidationError,
)
from focusapi.models.transaction import TransactionEntry, TransactionType
from focusapi.repositories.ledger_repository import LedgerRepository
from focusapi.schemas.ledger import Credit, Debit, RewardEntry, UnlockEntry
from focusapi.services.ledger_service import LedgerService
from focusapi.services.unlock_service import UnlockService

# 2024-01-01 09:00:00 UTC
BASE_NOW = 1704099600000


def _reward(amount: int) -> Credit:
    return Credit(
        amount=amount,
        tx_type=TransactionType.REWARD,
        metadata={"minutes": 60, "window_start": 0, "window_end": 3600000},
    )


def _unlock(amount: int, **kwargs) -> Debit:
    return Debit(
        amount=amount,
        tx_type=TransactionType.UNLOCK,
        metadata={"app_package": "com.example.app", "app_name": "Example"},
        **kwargs,
    )


@pytest.fixture
def ledger_service(db, settings):
    return LedgerService(db, settings)


class TestApplyLedgerOperation:
    """단일 적립/차감 연산 테스트"""

    def test_credit_appends_one_entry_with_snapshot(self, ledger_service, provision, db):
        """적립 시 잔액과 거래 스냅샷이 함께 기록된다"""
        # Given
        provision("user-1", 0)

        # When
        result = ledger_service.apply_ledger_operation("user-1", _reward(30), now=BASE_NOW)

        # Then
        assert result.success is True
        assert result.amount == 30
        assert result.balance == 30
        assert result.transaction_id is not None
        entries = db.query(TransactionEntry).filter_by(user_id="user-1").all()
        assert len(entries) == 1
        assert entries[0].balance == 30
        assert entries[0].timestamp == BASE_NOW

    def test_debit_rejects_overdraw_without_partial_write(self, ledger_service, provision, db):
        """잔액보다 큰 차감은 실패하고 아무것도 기록되지 않는다"""
        provision("user-1", 15)

        with pytest.raises(InsufficientBalanceError):
            ledger_service.apply_ledger_operation("user-1", _unlock(20))

        assert ledger_service.get_balance("user-1").balance == 15
        assert db.query(TransactionEntry).count() == 0

    def test_unchecked_debit_still_cannot_go_negative(self, ledger_service, provision):
        """잔액 확인을 끈 차감도 음수 잔액은 허용하지 않는다"""
        provision("user-1", 5)

        with patch("focusapi.repositories.ledger_repository.logger") as mock_logger:
            with pytest.raises(InsufficientBalanceError):
                ledger_service.apply_ledger_operation(
                    "user-1", _unlock(6, min_balance_check=False)
                )
            with pytest.raises(InsufficientBalanceError):
                ledger_service.apply_ledger_operation("user-1", _unlock(6))

        # 플래그는 경고 로그 여부만 바꾼다
        assert mock_logger.warning.call_count == 1
        assert "overdraw" in mock_logger.warning.call_args.args[0]
        assert ledger_service.get_balance("user-1").balance == 5

    def test_exact_balance_debit_reaches_zero(self, ledger_service, provision):
        provision("user-1", 20)

        result = ledger_service.apply_ledger_operation("user-1", _unlock(20))

        assert result.balance == 0
        assert result.amount == -20

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount_is_invalid(self, ledger_service, provision, db, amount):
        """0 이하 금액은 InvalidAmountError"""
        provision("user-1", 100)

        with pytest.raises(InvalidAmountError):
            ledger_service.apply_ledger_operation("user-1", _reward(amount))

        assert db.query(TransactionEntry).count() == 0

    def test_unknown_user(self, ledger_service):
        with pytest.raises(UserNotFoundError):
            ledger_service.apply_ledger_operation("ghost", _reward(10))

    @pytest.mark.parametrize(
        "operation",
        [
            Credit(amount=10, tx_type=TransactionType.REWARD, metadata={}),
            Credit(amount=10, tx_type=TransactionType.PURCHASE, metadata={"minutes": 60}),
            Debit(amount=5, tx_type=TransactionType.UNLOCK, metadata={"package": "com.a"}),
        ],
    )
    def test_metadata_must_match_transaction_type(
        self, ledger_service, provision, db, operation
    ):
        """유형별 메타데이터가 맞지 않으면 아무것도 기록하지 않고 거래 내역 조회는 계속 동작한다"""
        # Given
        provision("user-1", 50)

        # When
        with pytest.raises(ValidationError) as exc_info:
            ledger_service.apply_ledger_operation("user-1", operation)

        # Then
        assert exc_info.value.error_code == "VALIDATION_001"
        assert exc_info.value.details["errors"]
        assert db.query(TransactionEntry).count() == 0
        assert ledger_service.get_balance("user-1").balance == 50
        assert ledger_service.get_transactions("user-1").entries == []

    def test_request_id_replays_original_result(self, ledger_service, provision, db):
        """같은 request_id 재요청은 원래 결과를 돌려주고 다시 차감하지 않는다"""
        provision("user-1", 100)

        first = ledger_service.apply_ledger_operation("user-1", _unlock(20), request_id="req-1")
        second = ledger_service.apply_ledger_operation("user-1", _unlock(20), request_id="req-1")

        assert first.idempotent_replay is False
        assert second.idempotent_replay is True
        assert second.transaction_id == first.transaction_id
        assert second.balance == 80
        assert ledger_service.get_balance("user-1").balance == 80
        assert db.query(TransactionEntry).count() == 1


class TestLedgerReads:
    """거래 내역 조회 / 정합성 검증 테스트"""

    def test_history_is_newest_first_with_typed_metadata(self, ledger_service, provision):
        provision("user-1", 0)
        ledger_service.apply_ledger_operation("user-1", _reward(50), now=BASE_NOW)
        ledger_service.apply_ledger_operation("user-1", _unlock(20), now=BASE_NOW)

        history = ledger_service.get_transactions("user-1", limit=1)

        assert history.balance == 30
        assert history.total_count == 2
        assert history.has_next is True
        latest = history.entries[0]
        assert isinstance(latest, UnlockEntry)
        assert latest.metadata.app_package == "com.example.app"

    def test_history_type_filter(self, ledger_service, provision):
        provision("user-1", 0)
        ledger_service.apply_ledger_operation("user-1", _reward(50))
        ledger_service.apply_ledger_operation("user-1", _unlock(20))

        history = ledger_service.get_transactions("user-1", tx_type=TransactionType.REWARD)

        assert history.total_count == 1
        assert isinstance(history.entries[0], RewardEntry)
        assert history.entries[0].metadata.minutes == 60

    def test_integrity_ok_after_mixed_operations(self, ledger_service, provision):
        """거래 합계 = 최신 스냅샷 = 잔액 레코드"""
        provision("user-1", 0)
        ledger_service.apply_ledger_operation("user-1", _reward(50))
        ledger_service.apply_ledger_operation("user-1", _unlock(20))
        ledger_service.apply_ledger_operation("user-1", _reward(10))

        result = ledger_service.verify_integrity("user-1")

        assert result.status == "OK"
        assert result.calculated_balance == 40
        assert result.snapshot_balance == 40
        assert result.recorded_balance == 40
        assert result.entry_count == 3

    def test_integrity_mismatch_detected(self, ledger_service, provision, db):
        provision("user-1", 0)
        ledger_service.apply_ledger_operation("user-1", _reward(50))

        # 원장을 거치지 않은 잔액 변경
        record = LedgerRepository(db).get_record("user-1")
        record.tokens_balance = 999
        db.commit()

        assert ledger_service.verify_integrity("user-1").status == "MISMATCH"


class TestRunAtomic:
    """낙관적 동시성 재시도 테스트"""

    def test_interleaved_spend_is_detected_and_retried(
        self, db, other_db, provision, settings, enforcement
    ):
        """읽은 뒤 다른 요청이 먼저 커밋하면 재시도하여 최신 잔액으로 판단한다"""
        # Given: 해제 1회 비용만큼의 잔액
        provision("user-1", 20)
        repo = LedgerRepository(db, max_retries=3, backoff_ms=0)
        competitor = UnlockService(other_db, settings, enforcement)
        seen_balances = []

        def mutate(unit):
            seen_balances.append(unit.balance)
            if len(seen_balances) == 1:
                # 첫 시도에서 읽은 직후 다른 요청이 먼저 해제에 성공
                assert competitor.spend_unlock("user-1", "com.other").success is True
            if unit.balance < 20:
                return False
            unit.debit(
                20,
                TransactionType.UNLOCK,
                {"app_package": "com.mine", "app_name": ""},
            )
            return True

        # When
        result = repo.run_atomic("user-1", mutate)

        # Then: 정확히 한 번만 성공
        assert result is False
        assert seen_balances == [20, 0]
        assert repo.get_record("user-1").tokens_balance == 0
        unlocks = db.query(TransactionEntry).filter_by(type=TransactionType.UNLOCK).all()
        assert [e.details["app_package"] for e in unlocks] == ["com.other"]

    def test_retries_exhausted_raises_transient_conflict(self, db, provision):
        provision("user-1", 10)
        sleep = Mock()
        repo = LedgerRepository(db, max_retries=3, backoff_ms=10, sleep=sleep)
        mutate = Mock(side_effect=StaleDataError("stale"))

        with pytest.raises(TransientConflictError):
            repo.run_atomic("user-1", mutate)

        assert mutate.call_count == 3
        # 마지막 시도 뒤에는 대기하지 않음
        assert sleep.call_count == 2

    def test_policy_failure_is_not_retried(self, db, provision):
        provision("user-1", 10)
        repo = LedgerRepository(db, max_retries=5, backoff_ms=0)
        mutate = Mock(side_effect=InsufficientBalanceError())

        with pytest.raises(InsufficientBalanceError):
            repo.run_atomic("user-1", mutate)

        assert mutate.call_count == 1

    def test_version_increases_on_every_write(self, ledger_service, provision, db):
        provision("user-1", 0)
        repo = LedgerRepository(db)
        before = repo.get_record("user-1").version

        ledger_service.apply_ledger_operation("user-1", _reward(10))
        ledger_service.apply_ledger_operation("user-1", _reward(10))

        assert repo.get_record("user-1").version == before + 2

import pytest
from unittest.mock import Mock, patch

from focusapi.core.exceptions import CollaboratorUnavailableError, UserNotFoundError
from focusapi.models.investment import FundingSource, InvestmentPosition, MoneyMarketFund
from focusapi.models.transaction import TransactionEntry, TransactionType
from focusapi.providers.collaborators.payment import ChargeResult, PaymentGatewayClient
from focusapi.repositories.ledger_repository import LedgerRepository
from focusapi.services.investment_service import InvestmentService
from focusapi.services.ledger_service import LedgerService

# 2024-01-01 09:00:00 UTC
BASE_NOW = 1704099600000


@pytest.fixture
def payment():
    return Mock(spec=PaymentGatewayClient)


@pytest.fixture
def investment_service(db, settings, payment):
    return InvestmentService(db, settings, payment)


class TestInvest:
    """MMF 투자 테스트"""

    def test_balance_funded_investment(self, investment_service, provision, db):
        """잔액 차감 + 투자 기록 + 음수 거래가 함께 기록된다"""
        # Given
        provision("user-1", 150)

        # When
        result = investment_service.invest(
            "user-1", "mmf-stable", "Stable MMF", 100, 50.0, now=BASE_NOW
        )

        # Then
        assert result.success is True
        assert result.units == 2.0
        assert result.new_balance == 50
        assert result.funding_source == FundingSource.BALANCE

        position = db.query(InvestmentPosition).one()
        assert position.amount == 100
        assert position.units == 2.0
        assert position.payment_reference is None

        entry = db.query(TransactionEntry).one()
        assert entry.type == TransactionType.INVESTMENT
        assert entry.amount == -100
        assert entry.balance == 50
        assert entry.details["investment_id"] == position.id
        assert entry.details["mmf_id"] == "mmf-stable"

    def test_externally_funded_investment(self, investment_service, provision, db, settings):
        """외부 결제 투자는 잔액을 바꾸지 않고 양수 거래로 기록된다"""
        provision("user-1", 10)

        result = investment_service.invest(
            "user-1", "mmf-growth", "Growth MMF", 300, 100.0, payment_reference="pay-123"
        )

        assert result.success is True
        assert result.units == 3.0
        assert result.new_balance == 10
        assert result.funding_source == FundingSource.EXTERNAL

        record = LedgerRepository(db).get_record("user-1")
        assert record.tokens_balance == 10
        assert record.mmf_preference == "mmf-growth"
        entry = db.query(TransactionEntry).one()
        assert entry.amount == 300
        assert entry.balance == 10
        assert entry.details["payment_reference"] == "pay-123"

        # 외부 자금 유입은 정합성 합계에서 제외
        assert LedgerService(db, settings).verify_integrity("user-1").status == "OK"

    @pytest.mark.parametrize("amount,price", [(0, 50.0), (-10, 50.0), (100, 0.0), (100, -1.0)])
    def test_invalid_amount_or_price(self, investment_service, provision, db, amount, price):
        provision("user-1", 500)

        result = investment_service.invest("user-1", "mmf-stable", "Stable", amount, price)

        assert result.success is False
        assert result.error_code == "AMOUNT_001"
        assert result.new_balance == 500
        assert db.query(InvestmentPosition).count() == 0

    def test_insufficient_balance(self, investment_service, provision, db):
        provision("user-1", 99)

        result = investment_service.invest("user-1", "mmf-stable", "Stable", 100, 50.0)

        assert result.success is False
        assert result.error_code == "BALANCE_001"
        assert result.new_balance == 99
        assert db.query(InvestmentPosition).count() == 0
        assert db.query(TransactionEntry).count() == 0

    def test_request_id_replay(self, investment_service, provision, db):
        provision("user-1", 300)

        first = investment_service.invest(
            "user-1", "mmf-stable", "Stable", 100, 50.0, request_id="inv-1"
        )
        second = investment_service.invest(
            "user-1", "mmf-stable", "Stable", 100, 50.0, request_id="inv-1"
        )

        assert second.success is True
        assert second.investment_id == first.investment_id
        assert second.new_balance == 200
        assert db.query(InvestmentPosition).count() == 1

    def test_invest_with_payment(self, investment_service, payment, provision):
        provision("user-1", 0)
        payment.charge.return_value = ChargeResult(success=True, reference="pay-9")

        result = investment_service.invest_with_payment(
            "user-1", "mmf-stable", "Stable", 100, 50.0, "01012345678", request_id="r-1"
        )

        assert result.success is True
        assert result.funding_source == FundingSource.EXTERNAL
        payment.charge.assert_called_once_with(
            "user-1", 100, "01012345678", idempotency_key="r-1"
        )

    def test_invest_with_payment_replay_does_not_charge_twice(
        self, investment_service, payment, provision, db
    ):
        """같은 request_id 재요청은 결제 없이 원래 투자 결과를 돌려준다"""
        # Given
        provision("user-1", 0)
        payment.charge.return_value = ChargeResult(success=True, reference="pay-9")
        first = investment_service.invest_with_payment(
            "user-1", "mmf-stable", "Stable", 100, 50.0, "01012345678", request_id="r1"
        )

        # When
        second = investment_service.invest_with_payment(
            "user-1", "mmf-stable", "Stable", 100, 50.0, "01012345678", request_id="r1"
        )

        # Then
        assert second.success is True
        assert second.message == "Request already processed"
        assert second.investment_id == first.investment_id
        assert second.units == 2.0
        assert payment.charge.call_count == 1
        assert db.query(InvestmentPosition).count() == 1

    def test_invest_with_declined_payment(self, investment_service, payment, provision, db):
        provision("user-1", 0)
        payment.charge.return_value = ChargeResult(success=False, message="Card declined")

        result = investment_service.invest_with_payment(
            "user-1", "mmf-stable", "Stable", 100, 50.0, "01012345678"
        )

        assert result.success is False
        assert result.error_code == "PAYMENT_001"
        assert result.message == "Card declined"
        assert db.query(InvestmentPosition).count() == 0


class TestWithdrawAndPurchase:
    """출금 / 구매 테스트"""

    def test_withdraw(self, investment_service, provision, db):
        provision("user-1", 100)

        result = investment_service.withdraw("user-1", 40, "bank-77")

        assert result.success is True
        assert result.new_balance == 60
        entry = db.query(TransactionEntry).one()
        assert entry.type == TransactionType.WITHDRAWAL
        assert entry.amount == -40

    def test_withdraw_more_than_balance(self, investment_service, provision):
        provision("user-1", 10)

        result = investment_service.withdraw("user-1", 11, "bank-77")

        assert result.success is False
        assert result.error_code == "BALANCE_001"
        assert result.new_balance == 10

    def test_purchase_credits_after_charge(self, investment_service, payment, provision, db):
        provision("user-1", 5)
        payment.charge.return_value = ChargeResult(success=True, reference="pay-1")

        result = investment_service.purchase_tokens("user-1", 50, "01012345678", request_id="p-1")

        assert result.success is True
        assert result.new_balance == 55
        assert result.payment_reference == "pay-1"
        entry = db.query(TransactionEntry).one()
        assert entry.type == TransactionType.PURCHASE
        assert entry.amount == 50

    def test_purchase_replay_does_not_charge_twice(self, investment_service, payment, provision):
        provision("user-1", 0)
        payment.charge.return_value = ChargeResult(success=True, reference="pay-1")

        investment_service.purchase_tokens("user-1", 50, "01012345678", request_id="p-1")
        second = investment_service.purchase_tokens("user-1", 50, "01012345678", request_id="p-1")

        assert second.success is True
        assert second.new_balance == 50
        assert second.payment_reference == "pay-1"
        assert payment.charge.call_count == 1

    def test_purchase_declined(self, investment_service, payment, provision, db):
        provision("user-1", 5)
        payment.charge.return_value = ChargeResult(success=False, message="Payment failed")

        result = investment_service.purchase_tokens("user-1", 50, "01012345678")

        assert result.success is False
        assert result.error_code == "PAYMENT_001"
        assert result.new_balance == 5
        assert db.query(TransactionEntry).count() == 0

    def test_purchase_gateway_unavailable(self, investment_service, payment, provision, db):
        """결제 게이트웨이 연결 실패는 예외로 전파되고 원장은 그대로"""
        provision("user-1", 5)
        payment.charge.side_effect = CollaboratorUnavailableError("payment")

        with pytest.raises(CollaboratorUnavailableError):
            investment_service.purchase_tokens("user-1", 50, "01012345678")

        assert db.query(TransactionEntry).count() == 0

    def test_purchase_invalid_destination(self, investment_service, payment, provision):
        provision("user-1", 5)

        result = investment_service.purchase_tokens("user-1", 50, "0101")

        assert result.error_code == "VALIDATION_001"
        payment.charge.assert_not_called()

    def test_purchase_unknown_user(self, investment_service, payment):
        with pytest.raises(UserNotFoundError):
            investment_service.purchase_tokens("ghost", 50, "01012345678")
        payment.charge.assert_not_called()


class TestInvestmentQueries:
    """투자 조회 테스트"""

    def test_positions_summary_and_units(self, investment_service, provision):
        provision("user-1", 1000)
        investment_service.invest("user-1", "mmf-stable", "Stable", 100, 50.0)
        investment_service.invest("user-1", "mmf-stable", "Stable", 200, 50.0)
        investment_service.invest("user-1", "mmf-growth", "Growth", 300, 100.0)

        positions = investment_service.get_positions("user-1")
        summary = investment_service.get_summary("user-1")

        assert [p.amount for p in positions] == [300, 200, 100]
        assert len(investment_service.get_positions_by_fund("user-1", "mmf-stable")) == 2
        assert investment_service.get_total_invested("user-1") == 600
        assert investment_service.get_units_by_fund("user-1") == {
            "mmf-stable": 6.0,
            "mmf-growth": 3.0,
        }
        assert summary.investment_count == 3
        assert summary.unique_funds == 2
        assert summary.average_investment == 200.0

    def test_empty_summary(self, investment_service, provision):
        provision("user-1", 0)

        summary = investment_service.get_summary("user-1")

        assert summary.total_invested == 0
        assert summary.average_investment == 0.0

    def test_queries_degrade_on_store_failure(self, investment_service):
        with patch.object(
            investment_service.investment_repo, "list_by_user", side_effect=RuntimeError("db down")
        ):
            assert investment_service.get_positions("user-1") == []

    def test_list_funds(self, investment_service, db):
        db.add(MoneyMarketFund(id="mmf-stable", name="Stable", unit_price=50.0, rate_percent=3.2))
        db.commit()

        funds = investment_service.list_funds()

        assert [f.id for f in funds] == ["mmf-stable"]
        assert funds[0].unit_price == 50.0

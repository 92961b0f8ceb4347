from typing import Optional, Union
from sqlalchemy.orm import Session
import logging

from focusapi.config import Settings
from focusapi.core.exceptions import InvalidAmountError
from focusapi.models.transaction import TransactionEntry, TransactionType
from focusapi.providers.collaborators.engagement import EngagementDataClient
from focusapi.repositories.ledger_repository import LedgerRepository, LedgerUnit
from focusapi.repositories.processed_window_repository import (
    ProcessedWindowRepository,
    make_window_id,
)
from focusapi.schemas.rewards import (
    CreditWindowResponse,
    EarningsStatsResponse,
    WindowCleanupResponse,
)
from focusapi.utils.timezone_utils import MS_PER_DAY, MS_PER_HOUR, resolve_now

logger = logging.getLogger(__name__)


class RewardService:
    """사용 시간 기반 보상 적립 서비스

    윈도우 (user_id, start, end) 단위로 최대 한 번만 적립됩니다.
    처리 순서: 마커 확인 → 사용 시간 조회 → 원장 적립 커밋 → 마커 기록
    """

    def __init__(
        self,
        db: Session,
        settings: Settings,
        engagement_client: EngagementDataClient,
    ):
        self.db = db
        self.settings = settings
        self.engagement_client = engagement_client
        self.ledger_repo = LedgerRepository(
            db,
            max_retries=settings.LEDGER_MAX_RETRIES,
            backoff_ms=settings.LEDGER_RETRY_BACKOFF_MS,
        )
        self.window_repo = ProcessedWindowRepository(db)
        self.tokens_per_hour = settings.TOKENS_PER_HOUR
        self.retention_ms = settings.PROCESSED_WINDOW_RETENTION_DAYS * MS_PER_DAY

    def calculate_tokens(self, total_minutes: int) -> int:
        """완료된 1시간 단위로만 지급 (남는 분은 버림)"""
        return (total_minutes // 60) * self.tokens_per_hour

    def credit_window(
        self,
        user_id: str,
        window_start: int,
        window_end: int,
        minutes_override: Optional[int] = None,
        now: Optional[int] = None,
    ) -> CreditWindowResponse:
        """보상 윈도우 적립

        Args:
            user_id: 사용자 ID
            window_start: 윈도우 시작 (epoch ms)
            window_end: 윈도우 종료 (epoch ms, 미포함)
            minutes_override: 측정값 대신 사용할 사용 시간 (분)
            now: 기준 시각 (epoch ms)

        Returns:
            CreditWindowResponse: 이미 처리된 윈도우는 {0, 0}

        Raises:
            InvalidAmountError: 윈도우 구간 또는 사용 시간이 올바르지 않음
            CollaboratorUnavailableError: 사용 시간 조회 실패 (원장/마커 변경 없음)
            TransientConflictError: 동시 수정 재시도 한도 초과
        """
        if window_end <= window_start:
            raise InvalidAmountError(
                "window_end must be greater than window_start",
                details={"window_start": window_start, "window_end": window_end},
            )
        if minutes_override is not None and minutes_override < 0:
            raise InvalidAmountError(
                "minutes must not be negative", details={"minutes": minutes_override}
            )

        current = resolve_now(now)
        window_id = make_window_id(user_id, window_start, window_end)

        if self.window_repo.is_processed(window_id):
            logger.info(f"Window {window_id} already processed, skipping")
            return CreditWindowResponse(tokens_awarded=0, total_minutes=0)

        # 마커가 정리된 뒤 재제출되어도 다시 적립되지 않도록 보관 기간 밖 윈도우는 거부
        if window_end < current - self.retention_ms:
            logger.warning(
                f"Window {window_id} is older than the retention horizon, skipping"
            )
            return CreditWindowResponse(tokens_awarded=0, total_minutes=0)

        if minutes_override is not None:
            total_minutes = minutes_override
        else:
            total_minutes = self.engagement_client.get_minutes(
                user_id, window_start, window_end
            )

        tokens_awarded = self.calculate_tokens(total_minutes)

        if tokens_awarded > 0:

            def mutate(unit: LedgerUnit) -> Union[TransactionEntry, None]:
                # 동시 제출된 같은 윈도우가 먼저 커밋된 경우
                if unit.find_request() is not None:
                    return None
                return unit.credit(
                    tokens_awarded,
                    TransactionType.REWARD,
                    {
                        "minutes": total_minutes,
                        "window_start": window_start,
                        "window_end": window_end,
                    },
                )

            entry = self.ledger_repo.run_atomic(
                user_id, mutate, request_id=f"window:{window_id}", now=now
            )
            if entry is None:
                logger.info(f"Window {window_id} was credited concurrently, skipping")
                self._mark(user_id, window_start, window_end, current)
                return CreditWindowResponse(tokens_awarded=0, total_minutes=0)

            logger.info(
                f"Awarded {tokens_awarded} tokens to user {user_id} for {total_minutes} minutes "
                f"(window {window_start}-{window_end}), balance={entry.balance}"
            )

        self._mark(user_id, window_start, window_end, current)
        return CreditWindowResponse(
            tokens_awarded=tokens_awarded, total_minutes=total_minutes
        )

    def _mark(self, user_id: str, window_start: int, window_end: int, processed_at: int) -> None:
        try:
            self.window_repo.mark_processed(
                user_id, window_start, window_end, processed_at
            )
        except Exception as e:
            logger.error(
                f"Failed to mark window {make_window_id(user_id, window_start, window_end)} "
                f"after commit: {str(e)}"
            )
            raise

    def credit_last_hour(
        self, user_id: str, now: Optional[int] = None
    ) -> CreditWindowResponse:
        """직전 완료된 1시간 구간 적립"""
        window_end = (resolve_now(now) // MS_PER_HOUR) * MS_PER_HOUR
        return self.credit_window(user_id, window_end - MS_PER_HOUR, window_end, now=now)

    def credit_last_day(
        self, user_id: str, now: Optional[int] = None
    ) -> CreditWindowResponse:
        """직전 완료된 24시간 구간 적립"""
        window_end = (resolve_now(now) // MS_PER_HOUR) * MS_PER_HOUR
        return self.credit_window(user_id, window_end - MS_PER_DAY, window_end, now=now)

    def cleanup_processed_windows(self, now: Optional[int] = None) -> WindowCleanupResponse:
        """보관 기간이 지난 처리 마커 삭제"""
        cutoff = resolve_now(now) - self.retention_ms
        deleted_count = self.window_repo.delete_processed_before(cutoff)
        logger.info(f"Cleaned up {deleted_count} processed windows before {cutoff}")
        return WindowCleanupResponse(deleted_count=deleted_count, cutoff=cutoff)

    def get_total_tokens_earned(self, user_id: str) -> int:
        try:
            return self.ledger_repo.sum_amount(user_id, TransactionType.REWARD)
        except Exception as e:
            logger.error(f"Failed to sum rewards for user {user_id}: {str(e)}")
            return 0

    def get_earnings_stats(
        self, user_id: str, start: int, end: int
    ) -> EarningsStatsResponse:
        """[start, end) 구간 보상 통계 - 조회 실패 시 0으로 응답"""
        try:
            entries = self.ledger_repo.get_transactions_in_range(
                user_id, start, end, tx_type=TransactionType.REWARD
            )
        except Exception as e:
            logger.error(f"Failed to get earnings stats for user {user_id}: {str(e)}")
            return EarningsStatsResponse(tokens=0, minutes=0, count=0)

        return EarningsStatsResponse(
            tokens=sum(entry.amount for entry in entries),
            minutes=sum(entry.metadata.minutes for entry in entries),
            count=len(entries),
        )

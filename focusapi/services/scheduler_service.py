from typing import List, Optional
import logging

from focusapi.core.exceptions import BaseAPIException
from focusapi.schemas.batch import SchedulerTickResponse, UserTickResult
from focusapi.schemas.rewards import WindowCleanupResponse
from focusapi.services.reward_service import RewardService
from focusapi.services.unlock_service import UnlockService
from focusapi.utils.timezone_utils import resolve_now

logger = logging.getLogger(__name__)


class SchedulerService:
    """외부 스케줄러가 주기적으로 호출하는 작업 (호출 간 공유 상태 없음)"""

    def __init__(self, reward_service: RewardService, unlock_service: UnlockService):
        self.reward_service = reward_service
        self.unlock_service = unlock_service

    def run_tick(
        self,
        user_ids: List[str],
        now: Optional[int] = None,
        credit_rewards: bool = True,
        reconcile: bool = True,
    ) -> SchedulerTickResponse:
        """사용자별 직전 1시간 보상 적립 + 만료 세션 재잠금

        한 사용자의 실패는 다른 사용자 처리에 영향을 주지 않으며, 보상 적립과
        재잠금은 서로 독립적으로 실행되고 단계별 오류가 따로 기록됩니다.
        """
        current = resolve_now(now)
        results: List[UserTickResult] = []

        for user_id in dict.fromkeys(user_ids):
            result = UserTickResult(user_id=user_id)
            # 보상 적립 실패(예: 사용량 서비스 장애)가 재잠금을 막지 않도록 단계별로 처리
            if credit_rewards:
                try:
                    credited = self.reward_service.credit_last_hour(user_id, now=current)
                    result.tokens_awarded = credited.tokens_awarded
                except Exception as e:
                    result.reward_error = self._step_failed("reward", user_id, e)
            if reconcile:
                try:
                    reconciled = self.unlock_service.reconcile(user_id, now=current)
                    result.relocked_packages = reconciled.relocked_packages
                except Exception as e:
                    result.reconcile_error = self._step_failed("reconcile", user_id, e)

            result.error = result.reward_error or result.reconcile_error
            result.success = result.error is None
            results.append(result)

        failed = sum(1 for r in results if not r.success)
        logger.info(f"Scheduler tick finished: {len(results)} users, {failed} failed")
        return SchedulerTickResponse(
            processed=len(results) - failed, failed=failed, results=results
        )

    @staticmethod
    def _step_failed(step: str, user_id: str, e: Exception) -> str:
        if isinstance(e, BaseAPIException):
            logger.warning(
                f"Scheduler {step} failed for user {user_id}: {e.error_code} {e.message}"
            )
            return e.error_code
        logger.error(f"Scheduler {step} failed for user {user_id}: {str(e)}")
        return type(e).__name__

    def cleanup(self, now: Optional[int] = None) -> WindowCleanupResponse:
        return self.reward_service.cleanup_processed_windows(now=now)

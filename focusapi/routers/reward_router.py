from typing import Optional

from fastapi import APIRouter, Depends, Query

from focusapi.core.auth_middleware import get_current_user_id
from focusapi.deps import get_reward_service
from focusapi.schemas.rewards import (
    CreditWindowRequest,
    CreditWindowResponse,
    EarningsStatsResponse,
)
from focusapi.services.reward_service import RewardService
from focusapi.utils.timezone_utils import MS_PER_DAY, now_ms

router = APIRouter(prefix="/rewards", tags=["rewards"])


@router.post("/windows", response_model=CreditWindowResponse)
def credit_window(
    request: CreditWindowRequest,
    user_id: str = Depends(get_current_user_id),
    reward_service: RewardService = Depends(get_reward_service),
) -> CreditWindowResponse:
    """
    사용 시간 윈도우 보상 적립

    같은 윈도우를 다시 제출하면 {0, 0}을 반환합니다.

    HTTP Status:
        200: 처리 완료
        422: 윈도우 구간 오류
        503: 사용량 조회 서비스 연결 실패
    """
    return reward_service.credit_window(
        user_id,
        request.window_start,
        request.window_end,
        minutes_override=request.minutes_override,
    )


@router.post("/hourly", response_model=CreditWindowResponse)
def credit_last_hour(
    user_id: str = Depends(get_current_user_id),
    reward_service: RewardService = Depends(get_reward_service),
) -> CreditWindowResponse:
    """직전 완료된 1시간 적립"""
    return reward_service.credit_last_hour(user_id)


@router.post("/daily", response_model=CreditWindowResponse)
def credit_last_day(
    user_id: str = Depends(get_current_user_id),
    reward_service: RewardService = Depends(get_reward_service),
) -> CreditWindowResponse:
    """직전 완료된 24시간 적립"""
    return reward_service.credit_last_day(user_id)


@router.get("/stats", response_model=EarningsStatsResponse)
def get_earnings_stats(
    start: Optional[int] = Query(None, ge=0, description="시작 (epoch ms, 기본: 24시간 전)"),
    end: Optional[int] = Query(None, ge=0, description="종료 (epoch ms, 기본: 현재)"),
    user_id: str = Depends(get_current_user_id),
    reward_service: RewardService = Depends(get_reward_service),
) -> EarningsStatsResponse:
    end = end if end is not None else now_ms()
    start = start if start is not None else end - MS_PER_DAY
    return reward_service.get_earnings_stats(user_id, start, end)

from typing import Optional

from fastapi import APIRouter, Depends

from focusapi.core.auth_middleware import require_internal_token
from focusapi.deps import get_scheduler_service
from focusapi.schemas.batch import SchedulerTickRequest, SchedulerTickResponse
from focusapi.schemas.rewards import WindowCleanupResponse
from focusapi.services.scheduler_service import SchedulerService

router = APIRouter(
    prefix="/batch",
    tags=["batch"],
    dependencies=[Depends(require_internal_token)],
)


@router.post("/tick", response_model=SchedulerTickResponse)
def run_tick(
    request: SchedulerTickRequest,
    scheduler_service: SchedulerService = Depends(get_scheduler_service),
) -> SchedulerTickResponse:
    """
    주기 작업 실행 (EventBridge 등 외부 스케줄러가 호출)

    - 직전 1시간 보상 적립
    - 만료 세션 재잠금
    사용자별 실패는 results에 기록되고 나머지 사용자는 계속 처리됩니다.
    """
    return scheduler_service.run_tick(
        request.user_ids,
        credit_rewards=request.credit_rewards,
        reconcile=request.reconcile,
    )


@router.post("/cleanup-windows", response_model=WindowCleanupResponse)
def cleanup_windows(
    now: Optional[int] = None,
    scheduler_service: SchedulerService = Depends(get_scheduler_service),
) -> WindowCleanupResponse:
    """보관 기간이 지난 보상 윈도우 처리 마커 삭제"""
    return scheduler_service.cleanup(now=now)

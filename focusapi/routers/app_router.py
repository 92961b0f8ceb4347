"""
앱 잠금/해제 API 라우터

- POST /apps/unlock: 토큰으로 앱 임시 해제
- POST /apps/reconcile: 만료 세션 재잠금
- GET /apps/locked: 잠금 목록
- GET /apps/sessions: 활성 해제 세션
- POST /apps/lock: 잠금 목록에 추가
- POST /apps/unlock-permanently: 잠금 목록에서 제외
"""

from fastapi import APIRouter, Depends

from focusapi.core.auth_middleware import get_current_user_id
from focusapi.deps import get_unlock_service
from focusapi.schemas.unlock import (
    ActiveSessionsResponse,
    LockAppsRequest,
    LockedAppsResponse,
    ReconcileResponse,
    SpendUnlockRequest,
    SpendUnlockResponse,
)
from focusapi.services.unlock_service import UnlockService

router = APIRouter(prefix="/apps", tags=["apps"])


@router.post("/unlock", response_model=SpendUnlockResponse)
def unlock_app(
    request: SpendUnlockRequest,
    user_id: str = Depends(get_current_user_id),
    unlock_service: UnlockService = Depends(get_unlock_service),
) -> SpendUnlockResponse:
    """
    토큰을 사용해 앱을 임시 해제

    잔액이 부족하면 success=False (차감/세션 생성 없음).
    request_id를 보내면 재시도 시 원래 결과를 돌려받습니다.
    """
    return unlock_service.spend_unlock(
        user_id,
        request.package_name,
        app_name=request.app_name,
        request_id=request.request_id,
    )


@router.post("/reconcile", response_model=ReconcileResponse)
def reconcile_sessions(
    user_id: str = Depends(get_current_user_id),
    unlock_service: UnlockService = Depends(get_unlock_service),
) -> ReconcileResponse:
    """만료된 해제 세션의 앱을 다시 잠금 (중복 호출 안전)"""
    return unlock_service.reconcile(user_id)


@router.get("/locked", response_model=LockedAppsResponse)
def get_locked_apps(
    user_id: str = Depends(get_current_user_id),
    unlock_service: UnlockService = Depends(get_unlock_service),
) -> LockedAppsResponse:
    return unlock_service.get_locked_apps(user_id)


@router.get("/sessions", response_model=ActiveSessionsResponse)
def get_active_sessions(
    user_id: str = Depends(get_current_user_id),
    unlock_service: UnlockService = Depends(get_unlock_service),
) -> ActiveSessionsResponse:
    return unlock_service.get_active_sessions(user_id)


@router.post("/lock", response_model=LockedAppsResponse)
def lock_apps(
    request: LockAppsRequest,
    user_id: str = Depends(get_current_user_id),
    unlock_service: UnlockService = Depends(get_unlock_service),
) -> LockedAppsResponse:
    return unlock_service.lock_apps(user_id, request.package_names)


@router.post("/unlock-permanently", response_model=LockedAppsResponse)
def unlock_apps_permanently(
    request: LockAppsRequest,
    user_id: str = Depends(get_current_user_id),
    unlock_service: UnlockService = Depends(get_unlock_service),
) -> LockedAppsResponse:
    return unlock_service.unlock_apps_permanently(user_id, request.package_names)

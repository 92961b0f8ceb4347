from fastapi import APIRouter, Depends

from focusapi.core.auth_middleware import require_internal_token
from focusapi.deps import get_unlock_service
from focusapi.schemas.unlock import EnforcementUnlockRequest, SpendUnlockResponse
from focusapi.services.unlock_service import UnlockService

router = APIRouter(
    prefix="/enforcement",
    tags=["enforcement"],
    dependencies=[Depends(require_internal_token)],
)


@router.post("/unlock-requests", response_model=SpendUnlockResponse)
def handle_unlock_request(
    request: EnforcementUnlockRequest,
    unlock_service: UnlockService = Depends(get_unlock_service),
) -> SpendUnlockResponse:
    """차단 화면에서 사용자가 해제를 요청한 경우 (내부 토큰 필요)"""
    return unlock_service.handle_unlock_request(
        request.user_id,
        request.package_name,
        app_name=request.app_name,
        request_id=request.request_id,
    )

from pydantic import BaseModel, Field
from typing import List, Optional


class UnlockSession(BaseModel):
    """앱 임시 해제 세션"""

    package_name: str = Field(..., description="앱 패키지")
    unlocked_at: int = Field(..., description="해제 시각 (epoch ms)")
    expires_at: int = Field(..., description="만료 시각 (epoch ms)")

    class Config:
        from_attributes = True


class SpendUnlockRequest(BaseModel):
    """토큰을 사용한 앱 임시 해제 요청"""

    package_name: str = Field(..., min_length=1, max_length=255, description="앱 패키지")
    app_name: str = Field("", max_length=255, description="앱 표시 이름")
    request_id: Optional[str] = Field(
        None, max_length=128, description="재시도 중복 방지용 요청 ID"
    )


class SpendUnlockResponse(BaseModel):
    """앱 임시 해제 결과"""

    success: bool = Field(..., description="성공 여부")
    new_balance: int = Field(..., description="처리 후 잔액")
    message: str = Field(..., description="응답 메시지")
    error_code: Optional[str] = Field(None, description="실패 코드")
    session: Optional[UnlockSession] = Field(None, description="생성된 세션")
    enforcement_synced: bool = Field(False, description="차단 서비스 동기화 성공 여부")


class ReconcileResponse(BaseModel):
    """만료 세션 재잠금 결과"""

    relocked_packages: List[str] = Field(..., description="다시 잠긴 패키지")
    locked_apps: List[str] = Field(..., description="현재 잠금 목록")
    active_sessions: List[UnlockSession] = Field(..., description="남은 활성 세션")
    enforcement_synced: bool = Field(False, description="차단 서비스 동기화 성공 여부")


class LockAppsRequest(BaseModel):
    """잠금 목록 편집 요청"""

    package_names: List[str] = Field(..., min_length=1, description="대상 패키지 목록")


class LockedAppsResponse(BaseModel):
    """현재 잠금 목록"""

    locked_apps: List[str] = Field(..., description="잠금 패키지 목록")
    enforcement_synced: Optional[bool] = Field(None, description="차단 서비스 동기화 성공 여부")


class ActiveSessionsResponse(BaseModel):
    """활성 해제 세션 목록"""

    sessions: List[UnlockSession] = Field(..., description="활성 세션")
    now: int = Field(..., description="기준 시각 (epoch ms)")


class EnforcementUnlockRequest(BaseModel):
    """차단 화면에서 발생한 해제 요청"""

    user_id: str = Field(..., min_length=1, max_length=128, description="사용자 ID")
    package_name: str = Field(..., min_length=1, max_length=255, description="앱 패키지")
    app_name: str = Field("", max_length=255, description="앱 표시 이름")
    request_id: Optional[str] = Field(None, max_length=128, description="요청 ID")

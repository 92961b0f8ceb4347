from pydantic import BaseModel, Field
from typing import List, Optional


class SchedulerTickRequest(BaseModel):
    """주기 작업 실행 요청 (외부 스케줄러가 호출)"""

    user_ids: List[str] = Field(..., min_length=1, description="대상 사용자 ID 목록")
    credit_rewards: bool = Field(True, description="최근 1시간 보상 적립 실행 여부")
    reconcile: bool = Field(True, description="만료 세션 재잠금 실행 여부")


class UserTickResult(BaseModel):
    """사용자별 주기 작업 결과"""

    user_id: str
    tokens_awarded: int = 0
    relocked_packages: List[str] = Field(default_factory=list)
    success: bool = True
    # 첫 번째로 실패한 단계의 오류 코드
    error: Optional[str] = None
    reward_error: Optional[str] = None
    reconcile_error: Optional[str] = None


class SchedulerTickResponse(BaseModel):
    """주기 작업 실행 결과"""

    processed: int = Field(..., description="처리된 사용자 수")
    failed: int = Field(..., description="실패한 사용자 수")
    results: List[UserTickResult] = Field(..., description="사용자별 결과")

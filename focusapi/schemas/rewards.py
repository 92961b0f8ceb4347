from pydantic import BaseModel, Field, model_validator
from typing import Optional


class CreditWindowRequest(BaseModel):
    """보상 윈도우 적립 요청"""

    window_start: int = Field(..., ge=0, description="윈도우 시작 (epoch ms)")
    window_end: int = Field(..., ge=0, description="윈도우 종료 (epoch ms, 미포함)")
    minutes_override: Optional[int] = Field(
        None, ge=0, description="수동 입력 사용 시간 (분) - 측정값 대신 사용"
    )

    @model_validator(mode="after")
    def _check_window(self):
        if self.window_end <= self.window_start:
            raise ValueError("window_end must be greater than window_start")
        return self


class CreditWindowResponse(BaseModel):
    """보상 윈도우 적립 결과"""

    tokens_awarded: int = Field(..., description="지급된 토큰 수")
    total_minutes: int = Field(..., description="계산에 사용된 사용 시간 (분)")


class EarningsStatsResponse(BaseModel):
    """기간별 보상 통계"""

    tokens: int = Field(..., description="보상 토큰 합계")
    minutes: int = Field(..., description="보상 대상 사용 시간 합계")
    count: int = Field(..., description="보상 거래 수")


class WindowCleanupResponse(BaseModel):
    """오래된 처리 마커 정리 결과"""

    deleted_count: int = Field(..., description="삭제된 마커 수")
    cutoff: int = Field(..., description="삭제 기준 시각 (epoch ms)")


class ProcessedWindowSchema(BaseModel):
    """보상 윈도우 처리 마커"""

    window_id: str
    user_id: str
    window_start: int
    window_end: int
    processed_at: int

    class Config:
        from_attributes = True

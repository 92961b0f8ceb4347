"""
시간 유틸리티

원장/세션/윈도우의 모든 시각은 UTC epoch 밀리초 정수로 저장합니다.
"""

import time
from datetime import datetime, timezone
from typing import Optional

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR


def now_ms() -> int:
    """현재 시각 (epoch ms)"""
    return int(time.time() * 1000)


def resolve_now(now: Optional[int] = None) -> int:
    """호출자가 지정한 시각이 있으면 그대로, 없으면 현재 시각"""
    return now_ms() if now is None else now


def utc_now_str() -> str:
    """검증 시각 표기용 UTC 문자열"""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

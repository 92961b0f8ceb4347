import hmac
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from focusapi.config import settings
from focusapi.core.exceptions import AuthenticationError

# 배치/내부 호출용 Bearer 스킴
security = HTTPBearer(auto_error=False)


def _extract_user_id_from_internal_header(request: Request) -> Optional[str]:
    """상위 게이트웨이가 검증 후 전달한 사용자 ID 헤더를 읽는다.

    토큰 검증은 게이트웨이 책임이며, 이 서비스는 헤더 값을 그대로 신뢰한다.
    """
    hdr_name = settings.INTERNAL_USER_HEADER.lower()
    raw = request.headers.get(hdr_name)
    if raw is None:
        return None
    user_id = raw.strip()
    return user_id or None


def get_current_user_id(request: Request) -> str:
    """필수 사용자 식별 - 헤더가 없으면 401"""
    user_id = _extract_user_id_from_internal_header(request)
    if not user_id:
        raise AuthenticationError(
            message="User identity header is missing",
            details={"header": settings.INTERNAL_USER_HEADER},
        )
    return user_id


def require_internal_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """스케줄러/차단 서비스 등 내부 호출자용 고정 토큰 검증"""
    if not settings.AUTH_TOKEN:
        raise AuthenticationError(message="Internal token is not configured")
    if not credentials or not hmac.compare_digest(
        credentials.credentials, settings.AUTH_TOKEN
    ):
        raise AuthenticationError(message="Invalid internal token")

from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class BaseAPIException(HTTPException):
    """Base exception for API errors"""

    # 재시도 가능한 오류만 값을 가짐 (초 단위, Retry-After 헤더로 전달)
    retry_after: Optional[int] = None

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}

        super().__init__(
            status_code=status_code,
            detail={
                "success": False,
                "error": {
                    "code": error_code,
                    "message": message,
                    "details": self.details,
                },
            },
        )

    def __str__(self) -> str:
        return self.message


class AuthenticationError(BaseAPIException):
    """호출자 식별 실패"""

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="AUTH_001",
            message=message,
            details=details,
        )


class ValidationError(BaseAPIException):
    """Validation errors"""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_001",
            message=message,
            details=details,
        )


class InvalidAmountError(BaseAPIException):
    """금액이 양의 정수가 아님"""

    def __init__(self, message: str = "Amount must be a positive integer", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="AMOUNT_001",
            message=message,
            details=details,
        )


class NotFoundError(BaseAPIException):
    """Resource not found errors"""

    def __init__(self, message: str = "Resource not found", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND_001",
            message=message,
            details=details,
        )


class UserNotFoundError(BaseAPIException):
    """잔액 레코드가 없는 사용자"""

    def __init__(self, user_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="USER_404",
            message=f"User {user_id} not found",
            details={"user_id": user_id},
        )


class InsufficientBalanceError(BaseAPIException):
    """Insufficient balance errors"""

    def __init__(self, message: str = "Insufficient balance", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="BALANCE_001",
            message=message,
            details=details,
        )


class TransientConflictError(BaseAPIException):
    """동시 수정 충돌이 재시도 한도를 넘음. 호출자가 다시 시도할 수 있음"""

    retry_after = 1

    def __init__(self, message: str = "Concurrent update conflict, retry later", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONFLICT_002",
            message=message,
            details=details,
        )


class CollaboratorUnavailableError(BaseAPIException):
    """외부 협력 서비스 (사용량 조회, 결제) 호출 실패"""

    retry_after = 30

    def __init__(self, collaborator: str, message: str = "Upstream service unavailable", details: Optional[Dict] = None):
        self.collaborator = collaborator
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="UPSTREAM_001",
            message=message,
            details={"collaborator": collaborator, **(details or {})},
        )


class InternalServerError(BaseAPIException):
    """Internal server errors"""

    def __init__(self, message: str = "Internal server error", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="INTERNAL_001",
            message=message,
            details=details,
        )

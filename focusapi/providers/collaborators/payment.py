import httpx
import logging
from typing import Optional

from pydantic import BaseModel

from focusapi.config import Settings
from focusapi.core.exceptions import CollaboratorUnavailableError

logger = logging.getLogger(__name__)


class ChargeResult(BaseModel):
    success: bool
    reference: Optional[str] = None
    message: str = ""


class PaymentGatewayClient:
    """외부 결제 게이트웨이 - 결제 요청은 엔진이 재시도하지 않음"""

    name = "payment"

    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None):
        self.base_url = settings.PAYMENT_GATEWAY_URL.rstrip("/")
        self.api_key = settings.PAYMENT_GATEWAY_API_KEY
        self.timeout = settings.COLLABORATOR_TIMEOUT_SECONDS
        self._transport = transport

    def charge(
        self,
        user_id: str,
        amount: int,
        destination: str,
        idempotency_key: Optional[str] = None,
    ) -> ChargeResult:
        """결제 요청. 승인/거절은 ChargeResult로, 통신 실패는 예외로 반환"""
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    f"{self.base_url}/charges",
                    json={
                        "user_id": user_id,
                        "amount": amount,
                        "destination": destination,
                    },
                    headers=headers,
                )
        except httpx.TimeoutException:
            logger.error(f"Payment charge timeout for user {user_id}, amount={amount}")
            raise CollaboratorUnavailableError(self.name, "Payment gateway timeout")
        except httpx.HTTPError as e:
            logger.error(f"Payment charge failed for user {user_id}: {str(e)}")
            raise CollaboratorUnavailableError(self.name, "Payment gateway unreachable")

        if response.status_code >= 500:
            logger.error(
                f"Payment gateway error for user {user_id}: {response.status_code} {response.text}"
            )
            raise CollaboratorUnavailableError(
                self.name,
                "Payment gateway error",
                details={"status_code": response.status_code},
            )

        data = response.json()
        if response.status_code == 200 and data.get("status") == "succeeded":
            return ChargeResult(
                success=True,
                reference=data.get("reference"),
                message="Payment successful",
            )

        logger.info(f"Payment declined for user {user_id}: {data.get('message')}")
        return ChargeResult(
            success=False,
            reference=data.get("reference"),
            message=data.get("message") or "Payment failed. Please try again.",
        )

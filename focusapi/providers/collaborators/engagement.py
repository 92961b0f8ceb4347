import httpx
import logging

from focusapi.config import Settings
from focusapi.core.exceptions import CollaboratorUnavailableError

logger = logging.getLogger(__name__)


class EngagementDataClient:
    """기기 사용량 수집 서비스 - [start, end) 구간의 사용 시간(분) 조회"""

    name = "engagement"

    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None):
        self.base_url = settings.ENGAGEMENT_API_URL.rstrip("/")
        self.timeout = settings.COLLABORATOR_TIMEOUT_SECONDS
        self._transport = transport

    def get_minutes(self, user_id: str, window_start: int, window_end: int) -> int:
        """사용 시간 조회. 실패하거나 응답이 올바르지 않으면 CollaboratorUnavailableError"""
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(
                    f"{self.base_url}/users/{user_id}/engagement",
                    params={"start": window_start, "end": window_end},
                )
        except httpx.TimeoutException:
            logger.error(f"Engagement fetch timeout for user {user_id}")
            raise CollaboratorUnavailableError(self.name, "Engagement service timeout")
        except httpx.HTTPError as e:
            logger.error(f"Engagement fetch failed for user {user_id}: {str(e)}")
            raise CollaboratorUnavailableError(self.name, "Engagement service unreachable")

        if response.status_code != 200:
            logger.error(
                f"Engagement fetch failed for user {user_id}: {response.status_code} {response.text}"
            )
            raise CollaboratorUnavailableError(
                self.name,
                "Engagement service error",
                details={"status_code": response.status_code},
            )

        minutes = response.json().get("minutes")
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 0:
            logger.error(f"Invalid engagement payload for user {user_id}: {response.text}")
            raise CollaboratorUnavailableError(self.name, "Invalid engagement response")
        return minutes

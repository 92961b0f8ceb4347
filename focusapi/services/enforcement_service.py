import json
import logging
from typing import Iterable

from focusapi.config import Settings
from focusapi.services.aws_service import AwsService
from focusapi.utils.timezone_utils import now_ms

logger = logging.getLogger(__name__)


class EnforcementService:
    """디바이스 차단 서비스로 잠금 목록을 전달 (커밋 이후 best-effort 알림)

    사용자별 순서는 FIFO MessageGroupId로, 중복 전송은 레코드 version 기반
    MessageDeduplicationId로 보장합니다. 차단 서비스는 조회 대상이 아니며
    원장이 항상 기준입니다.
    """

    def __init__(self, settings: Settings, aws_service: AwsService):
        self.settings = settings
        self.aws_service = aws_service
        self.queue_url = settings.SQS_ENFORCEMENT_QUEUE_URL

    def sync_locked_set(
        self, user_id: str, locked_apps: Iterable[str], version: int
    ) -> bool:
        """잠금 목록 전송. 실패는 로그만 남기고 False 반환"""
        package_set = list(dict.fromkeys(locked_apps))
        body = json.dumps(
            {
                "type": "locked_apps",
                "user_id": user_id,
                "locked_apps": package_set,
                "version": version,
                "sent_at": now_ms(),
            }
        )
        try:
            self.aws_service.send_sqs_fifo_message(
                queue_url=self.queue_url,
                message_body=body,
                message_group_id=user_id,
                message_deduplication_id=f"{user_id}-{version}",
            )
        except Exception as e:
            logger.error(
                f"Enforcement sync failed for user {user_id} (version {version}): {str(e)}"
            )
            return False

        logger.info(
            f"Enforcement sync sent for user {user_id}: {len(package_set)} apps, version {version}"
        )
        return True

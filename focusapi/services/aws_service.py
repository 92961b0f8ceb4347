import logging
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config

from focusapi.config import Settings

logger = logging.getLogger(__name__)


class AwsService:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.aws_access_key_id = settings.AWS_ACCESS_KEY_ID
        self.aws_secret_access_key = settings.AWS_SECRET_ACCESS_KEY
        self.region_name = settings.AWS_REGION
        self.endpoint_url = settings.SQS_ENDPOINT_URL
        self._config = Config(
            connect_timeout=settings.COLLABORATOR_TIMEOUT_SECONDS,
            read_timeout=settings.COLLABORATOR_TIMEOUT_SECONDS,
            retries={"max_attempts": 2},
        )

    def _client(self, service: str):
        if self.aws_access_key_id and self.aws_secret_access_key:
            return boto3.client(
                service,
                region_name=self.region_name,
                aws_access_key_id=self.aws_access_key_id,
                aws_secret_access_key=self.aws_secret_access_key,
                endpoint_url=self.endpoint_url,
                config=self._config,
            )

        return boto3.client(
            service,
            region_name=self.region_name,
            endpoint_url=self.endpoint_url,
            config=self._config,
        )

    def send_sqs_fifo_message(
        self,
        queue_url: str,
        message_body: str,
        message_group_id: str,
        message_deduplication_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """FIFO 큐 전송. 실패 시 botocore 예외를 그대로 전파"""
        sqs = self._client("sqs")
        params = {
            "QueueUrl": queue_url,
            "MessageBody": message_body,
            "MessageGroupId": message_group_id,
        }
        if message_deduplication_id:
            params["MessageDeduplicationId"] = message_deduplication_id
        return sqs.send_message(**params)

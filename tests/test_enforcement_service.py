import json
from unittest.mock import Mock, patch

import pytest

from focusapi.services.aws_service import AwsService
from focusapi.services.enforcement_service import EnforcementService


@pytest.fixture
def aws_service():
    return Mock(spec=AwsService)


@pytest.fixture
def enforcement_service(settings, aws_service):
    return EnforcementService(settings, aws_service)


class TestSyncLockedSet:
    """차단 서비스 잠금 목록 전송 테스트"""

    def test_sends_fifo_message_per_user(self, enforcement_service, aws_service, settings):
        with patch("focusapi.services.enforcement_service.now_ms", return_value=1704099600000):
            synced = enforcement_service.sync_locked_set("user-1", ["com.a", "com.b", "com.a"], 7)

        assert synced is True
        kwargs = aws_service.send_sqs_fifo_message.call_args.kwargs
        assert kwargs["queue_url"] == settings.SQS_ENFORCEMENT_QUEUE_URL
        assert kwargs["message_group_id"] == "user-1"
        assert kwargs["message_deduplication_id"] == "user-1-7"
        assert json.loads(kwargs["message_body"]) == {
            "type": "locked_apps",
            "user_id": "user-1",
            "locked_apps": ["com.a", "com.b"],
            "version": 7,
            "sent_at": 1704099600000,
        }

    def test_failure_returns_false(self, enforcement_service, aws_service):
        """전송 실패는 예외 대신 False"""
        aws_service.send_sqs_fifo_message.side_effect = RuntimeError("queue down")

        assert enforcement_service.sync_locked_set("user-1", [], 1) is False


class TestAwsService:
    def test_send_fifo_message_params(self, settings):
        client = Mock()
        with patch("focusapi.services.aws_service.boto3.client", return_value=client) as factory:
            AwsService(settings).send_sqs_fifo_message(
                queue_url="https://queue", message_body="{}", message_group_id="g",
                message_deduplication_id="d",
            )

        assert factory.call_args.args == ("sqs",)
        client.send_message.assert_called_once_with(
            QueueUrl="https://queue",
            MessageBody="{}",
            MessageGroupId="g",
            MessageDeduplicationId="d",
        )

    def test_send_errors_propagate(self, settings):
        client = Mock()
        client.send_message.side_effect = RuntimeError("boom")
        with patch("focusapi.services.aws_service.boto3.client", return_value=client):
            with pytest.raises(RuntimeError):
                AwsService(settings).send_sqs_fifo_message("https://queue", "{}", "g")

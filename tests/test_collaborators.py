import httpx
import pytest

from focusapi.core.exceptions import CollaboratorUnavailableError
from focusapi.providers.collaborators.engagement import EngagementDataClient
from focusapi.providers.collaborators.payment import PaymentGatewayClient


def _transport(handler):
    return httpx.MockTransport(handler)


class TestEngagementDataClient:
    """사용량 조회 클라이언트 테스트"""

    def test_returns_minutes(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"minutes": 125})

        client = EngagementDataClient(settings, transport=_transport(handler))

        assert client.get_minutes("user-1", 0, 3600000) == 125
        assert seen["path"] == "/users/user-1/engagement"
        assert seen["params"] == {"start": "0", "end": "3600000"}

    def test_timeout_is_unavailable(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = EngagementDataClient(settings, transport=_transport(handler))

        with pytest.raises(CollaboratorUnavailableError):
            client.get_minutes("user-1", 0, 3600000)

    def test_error_status_is_unavailable(self, settings):
        client = EngagementDataClient(
            settings, transport=_transport(lambda request: httpx.Response(502, text="bad gateway"))
        )

        with pytest.raises(CollaboratorUnavailableError) as exc_info:
            client.get_minutes("user-1", 0, 3600000)
        assert exc_info.value.details["status_code"] == 502

    @pytest.mark.parametrize("payload", [{}, {"minutes": -1}, {"minutes": "60"}, {"minutes": True}])
    def test_invalid_payload_is_unavailable(self, settings, payload):
        client = EngagementDataClient(
            settings, transport=_transport(lambda request: httpx.Response(200, json=payload))
        )

        with pytest.raises(CollaboratorUnavailableError):
            client.get_minutes("user-1", 0, 3600000)


class TestPaymentGatewayClient:
    """결제 게이트웨이 클라이언트 테스트"""

    def test_successful_charge(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["idempotency_key"] = request.headers.get("Idempotency-Key")
            seen["path"] = request.url.path
            return httpx.Response(200, json={"status": "succeeded", "reference": "pay-1"})

        client = PaymentGatewayClient(settings, transport=_transport(handler))
        result = client.charge("user-1", 50, "01012345678", idempotency_key="p-1")

        assert result.success is True
        assert result.reference == "pay-1"
        assert seen == {"idempotency_key": "p-1", "path": "/charges"}

    def test_declined_charge(self, settings):
        client = PaymentGatewayClient(
            settings,
            transport=_transport(
                lambda request: httpx.Response(402, json={"status": "failed", "message": "Card declined"})
            ),
        )

        result = client.charge("user-1", 50, "01012345678")

        assert result.success is False
        assert result.message == "Card declined"

    def test_server_error_is_unavailable(self, settings):
        client = PaymentGatewayClient(
            settings, transport=_transport(lambda request: httpx.Response(503, text="down"))
        )

        with pytest.raises(CollaboratorUnavailableError):
            client.charge("user-1", 50, "01012345678")

    def test_connection_error_is_unavailable(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = PaymentGatewayClient(settings, transport=_transport(handler))

        with pytest.raises(CollaboratorUnavailableError):
            client.charge("user-1", 50, "01012345678")

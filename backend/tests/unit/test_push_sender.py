import httpx
import pytest

from saleradar.domain.errors import DeliveryError, FailureKind
from saleradar.domain.notifications.schemas import NotificationData, NotificationPayload
from saleradar.domain.notifications.sender import FcmPushSender, classify_fcm_failure


def _payload() -> NotificationPayload:
    return NotificationPayload(
        target="device-token",
        title="New Sale Event Nearby!",
        body="Yard sale",
        data=NotificationData(listing_id="l-1", deep_link="/event/l-1"),
    )


def _unregistered_body() -> dict:
    return {
        "error": {
            "status": "NOT_FOUND",
            "details": [
                {"@type": "type.googleapis.com/google.firebase.fcm.v1.FcmError", "errorCode": "UNREGISTERED"}
            ],
        }
    }


@pytest.mark.parametrize(
    "status_code, body, kind",
    [
        (404, {}, FailureKind.ENDPOINT_INVALID),
        (400, _unregistered_body(), FailureKind.ENDPOINT_INVALID),
        (429, {}, FailureKind.TRANSIENT),
        (503, {}, FailureKind.TRANSIENT),
        (400, {"error": {"status": "INVALID_ARGUMENT"}}, FailureKind.UNKNOWN),
        (401, {}, FailureKind.UNKNOWN),
    ],
)
def test_classify_fcm_failure(status_code, body, kind):
    assert classify_fcm_failure(status_code, body) is kind


@pytest.mark.asyncio
async def test_send_posts_v1_message():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["json"] = request.read()
        return httpx.Response(200, json={"name": "projects/demo/messages/1"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        sender = FcmPushSender(project_id="demo", access_token="secret", http=http)
        await sender.send(_payload())

    assert seen["url"].endswith("/projects/demo/messages:send")
    assert seen["auth"] == "Bearer secret"
    assert b'"deepLink":"/event/l-1"' in seen["json"].replace(b" ", b"")


@pytest.mark.asyncio
async def test_send_maps_unregistered_to_endpoint_invalid():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json=_unregistered_body())

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        sender = FcmPushSender(project_id="demo", access_token="secret", http=http)
        with pytest.raises(DeliveryError) as excinfo:
            await sender.send(_payload())

    assert excinfo.value.endpoint_invalid
    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_transport_errors_are_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        sender = FcmPushSender(project_id="demo", access_token="secret", http=http)
        with pytest.raises(DeliveryError) as excinfo:
            await sender.send(_payload())

    assert excinfo.value.kind is FailureKind.TRANSIENT

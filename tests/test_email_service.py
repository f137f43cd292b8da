import json

import httpx
import pytest

from finwatch.services.email_service import RESEND_ENDPOINT, EmailService


@pytest.mark.asyncio
async def test_sends_through_resend():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "em_123"})

    service = EmailService("re_test", "Finwatch <alerts@finwatch.app>", transport=httpx.MockTransport(handler))
    result = await service.send("asha@example.com", "Budget Alert", "<p>hi</p>")

    assert result == {"status": "sent", "id": "em_123", "error": None}
    assert seen["url"] == RESEND_ENDPOINT
    assert seen["auth"] == "Bearer re_test"
    assert seen["body"]["to"] == ["asha@example.com"]
    assert seen["body"]["html"] == "<p>hi</p>"


@pytest.mark.asyncio
async def test_server_error_is_reported_not_raised():
    service = EmailService("re_test", "a@b.c", transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    result = await service.send("asha@example.com", "s", "b")
    assert result["status"] == "failed"
    assert result["error"]


@pytest.mark.asyncio
async def test_unconfigured_delivery_is_skipped():
    def handler(request):
        raise AssertionError("no request expected")

    service = EmailService("", "a@b.c", transport=httpx.MockTransport(handler))
    result = await service.send("asha@example.com", "s", "b")
    assert result["status"] == "skipped"


@pytest.mark.asyncio
async def test_missing_recipient_is_skipped():
    result = await EmailService("re_test", "a@b.c").send("", "s", "b")
    assert result["status"] == "skipped"
    assert result["error"] == "No recipient"

"""
email_service.py - Outbound Email
Fire-and-forget delivery through the Resend HTTP API. Failures are reported
in the result dict and logged; nothing is retried.
"""

import logging

import httpx

logger = logging.getLogger(__name__)

RESEND_ENDPOINT = "https://api.resend.com/emails"


class EmailService:
    def __init__(
        self,
        api_key: str,
        sender: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self.transport = transport

    async def send(self, to: str, subject: str, html_body: str) -> dict:
        """Returns {status: "sent"|"failed"|"skipped", id, error}."""
        if not to:
            return {"status": "skipped", "id": None, "error": "No recipient"}
        if not self.api_key:
            logger.info("Email delivery not configured; would send %r to %s", subject, to)
            return {"status": "skipped", "id": None, "error": "Email delivery not configured"}

        try:
            headers = {
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            }
            body = {
                "from": self.sender,
                "to": [to],
                "subject": subject,
                "html": html_body,
            }
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(RESEND_ENDPOINT, headers=headers, json=body)
                response.raise_for_status()
                data = response.json()

            logger.info("Sent email %r to %s", subject, to)
            return {"status": "sent", "id": data.get("id"), "error": None}
        except httpx.TimeoutException:
            logger.error("Email to %s timed out", to)
            return {"status": "failed", "id": None, "error": "Timeout"}
        except Exception as e:
            logger.error("Email to %s failed: %s", to, e)
            return {"status": "failed", "id": None, "error": str(e)}

"""Login code delivery.

``log`` only records that a code went out (masked), which is what dev and
tests use. ``http`` posts the text to an SMS gateway as JSON and retries failed
attempts with exponential backoff.
"""

import logging
import time

import httpx

from ..config import settings
from .phone_utils import mask_code, mask_phone


logger = logging.getLogger("carrental.sms")

DEFAULT_TEMPLATE = "Your verification code is {code}"


class LogSender:
    name = "log"

    def deliver(self, to: str, text: str) -> None:
        logger.info("sms(log) to=%s chars=%d", mask_phone(to), len(text))


class HttpSender:
    name = "http"

    def __init__(self, url: str, token: str | None = None, sender: str | None = None,
                 attempts: int = 3, backoff: float = 0.5, timeout: float = 5.0):
        self.url = (url or "").strip()
        self.token = token
        self.sender = sender
        self.attempts = attempts
        self.backoff = backoff
        self.timeout = timeout

    def deliver(self, to: str, text: str) -> None:
        if not self.url:
            raise RuntimeError("OTP_SMS_HTTP_URL is required for the http SMS provider")
        body = {"to": to, "message": text}
        if self.sender:
            body["sender"] = self.sender
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}

        wait = self.backoff
        for attempt in range(1, self.attempts + 1):
            try:
                resp = httpx.post(self.url, json=body, headers=headers, timeout=self.timeout)
                resp.raise_for_status()
                return
            except httpx.HTTPError as exc:
                if attempt == self.attempts:
                    raise
                logger.warning("sms(http) attempt %d/%d to=%s failed: %s", attempt, self.attempts, mask_phone(to), exc)
                time.sleep(wait)
                wait *= 2


def sender_from_settings():
    if (settings.OTP_SMS_PROVIDER or "log").lower() == "http":
        return HttpSender(
            settings.OTP_SMS_HTTP_URL,
            token=settings.OTP_SMS_HTTP_AUTH_TOKEN or None,
            sender=settings.OTP_SMS_SENDER_NAME or None,
        )
    return LogSender()


def render_text(code: str) -> str:
    try:
        return settings.OTP_SMS_TEMPLATE.format(code=code)
    except (KeyError, IndexError, ValueError):
        # misconfigured template; never block a login on it
        return DEFAULT_TEMPLATE.format(code=code)


def send_code(phone: str, code: str, sender=None) -> None:
    """Deliver ``code`` to an E.164 ``phone``; raises if delivery fails."""
    sender = sender or sender_from_settings()
    sender.deliver(phone, render_text(code))
    logger.debug("otp sent via %s to=%s code=%s", sender.name, mask_phone(phone), mask_code(code))

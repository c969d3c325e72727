from __future__ import annotations

import logging
import re

import httpx

from estatehub.core.config import Settings

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"[^0-9]")

# +91XXXXXXXXXX / 91XXXXXXXXXX -> XXXXXXXXXX; the gateway expects the 10-digit subscriber number.
COUNTRY_CODE = "91"
SUBSCRIBER_NUMBER_LENGTH = 10


def normalize_for_provider(phone_number: str | None) -> str:
    digits = _NON_DIGITS.sub("", phone_number or "")
    if len(digits) == len(COUNTRY_CODE) + SUBSCRIBER_NUMBER_LENGTH and digits.startswith(COUNTRY_CODE):
        return digits[len(COUNTRY_CODE):]
    return digits


class SmsGateway:
    """Transactional SMS delivery for one-time codes.

    Outside production the gateway runs in bypass mode: missing credentials,
    provider rejections and transport errors are logged together with the code
    and reported as delivered, so local and test environments keep working
    without a live provider. In production every such failure is reported as
    ``False``.
    """

    def __init__(self, settings: Settings, *, client: httpx.Client | None = None) -> None:
        self._settings = settings
        self._client = client

    @property
    def bypass_enabled(self) -> bool:
        return not self._settings.is_production

    def build_params(self, number: str, otp: str) -> dict[str, str]:
        return {
            "user": self._settings.sms_api_user or "",
            "password": self._settings.sms_api_password or "",
            "senderid": self._settings.sms_sender_id,
            "channel": self._settings.sms_channel,
            "DCS": "0",
            "flashsms": "0",
            "number": number,
            "text": self._settings.sms_message_template.format(otp=otp),
            "route": self._settings.sms_route,
        }

    def _get(self, params: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return self._client.get(self._settings.sms_api_url, params=params)
        with httpx.Client(timeout=self._settings.sms_timeout_seconds) as client:
            return client.get(self._settings.sms_api_url, params=params)

    def send_otp(self, phone_number: str, otp: str) -> bool:
        number = normalize_for_provider(phone_number)
        if not number:
            logger.error("Phone number is empty after sanitization")
            return False

        if not self._settings.sms_credentials_configured:
            if self.bypass_enabled:
                logger.warning("SMS credentials missing. Bypass enabled, not sending SMS | phone=%s | otp=%s", phone_number, otp)
                return True
            logger.error("SMS credentials missing (SMS_API_USER / SMS_API_PASSWORD)")
            return False

        logger.info("Sending OTP to %s", phone_number)
        try:
            response = self._get(self.build_params(number, otp))
        except Exception as exc:
            # Any failure to build or send the request is a failed delivery.
            if self.bypass_enabled:
                logger.warning("SMS exception but bypass enabled | phone=%s | otp=%s | error=%r", phone_number, otp, exc)
                return True
            logger.error("Error sending OTP to %s: %r", phone_number, exc)
            return False

        if response.is_success:
            logger.info("OTP sent successfully to %s | provider_response=%s", phone_number, response.text)
            return True

        if self.bypass_enabled:
            logger.warning(
                "SMS provider failed but bypass enabled | phone=%s | otp=%s | status=%s",
                phone_number,
                otp,
                response.status_code,
            )
            return True
        logger.error("Failed to send OTP to %s: status=%s body=%s", phone_number, response.status_code, response.text)
        return False

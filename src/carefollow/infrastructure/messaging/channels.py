from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Protocol

import requests

from carefollow.core.config import DEFAULT_COUNTRY_CODE, DEFAULT_OTP_TTL_MINUTES, Settings
from carefollow.core.errors import DeliveryError

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0


@dataclass(slots=True)
class DeliveryResult:
    delivered: bool
    channel: str
    message_id: str | None = None
    error: str | None = None
    details: list[DeliveryResult] = field(default_factory=list)

    @property
    def delivered_channels(self) -> list[str]:
        if self.details:
            return [d.channel for d in self.details if d.delivered]
        return [self.channel] if self.delivered else []


class DeliveryChannel(Protocol):
    name: str

    def send(self, destination: str, secret: str, link: str, case_reference: str) -> DeliveryResult: ...


def normalize_phone(phone: str, default_country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Return an E.164 number, assuming the default country when none is given."""
    cleaned = re.sub(r"[^\d+]", "", phone or "")
    if not cleaned.startswith("+"):
        cleaned = cleaned.lstrip("0")
        cleaned = f"+{default_country_code}{cleaned}"
    return cleaned


class _TwilioMessagesChannel(ABC):
    name = "twilio"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        *,
        default_country_code: str = DEFAULT_COUNTRY_CODE,
        ttl_minutes: int = DEFAULT_OTP_TTL_MINUTES,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    ) -> None:
        if not (account_sid and auth_token and from_number):
            raise DeliveryError(f"{self.name} channel needs an account SID, auth token and sender number")
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.default_country_code = default_country_code
        self.ttl_minutes = ttl_minutes
        self.session = session or requests.Session()
        self.timeout = timeout

    def send(self, destination: str, secret: str, link: str, case_reference: str) -> DeliveryResult:
        url = f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"
        data = {
            "From": self._format_address(self.from_number),
            "To": self._format_address(normalize_phone(destination, self.default_country_code)),
            "Body": self.render_body(secret, link, case_reference),
        }
        try:
            response = self.session.post(
                url,
                data=data,
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("%s delivery failed for case %s: %s", self.name, case_reference, exc)
            return DeliveryResult(delivered=False, channel=self.name, error=str(exc))

        message_id = str(payload.get("sid") or "") or None
        logger.info("%s message sent for case %s: %s", self.name, case_reference, message_id)
        return DeliveryResult(delivered=True, channel=self.name, message_id=message_id)

    @abstractmethod
    def render_body(self, secret: str, link: str, case_reference: str) -> str: ...

    def _format_address(self, number: str) -> str:
        return number


class TwilioSmsChannel(_TwilioMessagesChannel):
    name = "sms"

    def render_body(self, secret: str, link: str, case_reference: str) -> str:
        # Single SMS segment where possible.
        return (
            f"carefollow: Your medical follow-up code is {secret}. "
            f"Valid for {self.ttl_minutes} mins. Complete here: {link}"
        )


class TwilioWhatsAppChannel(_TwilioMessagesChannel):
    name = "whatsapp"

    def render_body(self, secret: str, link: str, case_reference: str) -> str:
        return "\n".join(
            [
                "*carefollow Medical Follow-Up*",
                "",
                "Your doctor has requested a follow-up regarding your recent prescription.",
                "",
                f"*Your verification code:* *{secret}*",
                f"This code expires in *{self.ttl_minutes} minutes*.",
                "",
                "Complete your follow-up here:",
                link,
                "",
                f"Case reference: {case_reference}",
                "",
                "Do not share this code with anyone.",
            ]
        )

    def _format_address(self, number: str) -> str:
        if number.startswith("whatsapp:"):
            return number
        return f"whatsapp:{normalize_phone(number, self.default_country_code)}"


class FanOutChannel:
    """Sends through every configured channel; delivered if any succeeded."""

    name = "fan_out"

    def __init__(self, channels: list[DeliveryChannel]) -> None:
        self.channels = channels

    def send(self, destination: str, secret: str, link: str, case_reference: str) -> DeliveryResult:
        details: list[DeliveryResult] = []
        for channel in self.channels:
            try:
                details.append(channel.send(destination, secret, link, case_reference))
            except Exception as exc:
                logger.warning("Delivery channel %s raised: %s", channel.name, exc)
                details.append(DeliveryResult(delivered=False, channel=channel.name, error=str(exc)))

        delivered = any(d.delivered for d in details)
        errors = [f"{d.channel}: {d.error}" for d in details if d.error]
        return DeliveryResult(
            delivered=delivered,
            channel=self.name,
            error=None if delivered else ("; ".join(errors) or "No delivery channels configured"),
            details=details,
        )


class NullChannel:
    """Used when no provider is configured; the code must be shared manually."""

    name = "none"

    def send(self, destination: str, secret: str, link: str, case_reference: str) -> DeliveryResult:
        logger.info("No delivery channel configured for case %s; manual sharing required", case_reference)
        return DeliveryResult(delivered=False, channel=self.name, error="No delivery channel configured")


def build_delivery_channel(settings: Settings, session: requests.Session | None = None) -> DeliveryChannel:
    if not settings.twilio_configured:
        return NullChannel()

    common = {
        "default_country_code": settings.default_country_code,
        "ttl_minutes": settings.otp_ttl_minutes,
        "session": session,
    }
    channels: list[DeliveryChannel] = []
    if settings.twilio_whatsapp_number:
        channels.append(
            TwilioWhatsAppChannel(
                settings.twilio_account_sid or "",
                settings.twilio_auth_token or "",
                settings.twilio_whatsapp_number,
                **common,
            )
        )
    if settings.twilio_sms_number:
        channels.append(
            TwilioSmsChannel(
                settings.twilio_account_sid or "",
                settings.twilio_auth_token or "",
                settings.twilio_sms_number,
                **common,
            )
        )
    if not channels:
        return NullChannel()
    return FanOutChannel(channels)

"""WhatsApp delivery through the Twilio Messages REST API.

The gateway sends one message to one address. It retries transient
failures (network errors, timeouts, HTTP 429 and 5xx) a bounded number
of times with a 1s/3s/9s schedule and reports everything else as a
permanent failure. It never raises for delivery problems: callers get a
``DeliveryResult``.

Usage:
    gateway = WhatsAppGateway(get_whatsapp_settings())
    result = await gateway.send("+15551234567", "Hello")
    if not result.success and result.permanent:
        ...
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from notify_service.features.notifications.metrics import (
    whatsapp_send_duration_seconds,
    whatsapp_send_total,
)
from notify_service.utils.retry import RetryError, retry

if TYPE_CHECKING:
    from notify_service.core.settings import WhatsAppSettings

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"
TRIAL_ACCOUNT_ERROR_CODE = 21608
TRIAL_ACCOUNT_REASON = (
    "This phone number cannot receive messages on a Twilio trial account. "
    "Please verify the number in your Twilio dashboard or upgrade to a paid account."
)
NOT_CONFIGURED_REASON = "WhatsApp gateway is not configured"


def format_address(address: str) -> str:
    """Prefix an address with ``whatsapp:`` unless it already has it."""
    if address.startswith(WHATSAPP_PREFIX):
        return address
    return f"{WHATSAPP_PREFIX}{address}"


class TwilioAPIError(Exception):
    """Error response from the Twilio API."""

    def __init__(self, status_code: int, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code

    @property
    def is_trial_restriction(self) -> bool:
        return self.code == TRIAL_ACCOUNT_ERROR_CODE or "not a valid" in self.message

    @property
    def is_transient(self) -> bool:
        if self.is_trial_restriction:
            return False
        return self.status_code == 429 or self.status_code >= 500

    @property
    def reason(self) -> str:
        if self.is_trial_restriction:
            return TRIAL_ACCOUNT_REASON
        code = f" {self.code}" if self.code is not None else ""
        return f"Twilio API error ({self.status_code}{code}): {self.message}"


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, TwilioAPIError):
        return exc.is_transient
    return isinstance(exc, httpx.TransportError)


def _json_object(response: httpx.Response) -> dict[str, Any]:
    """The body as a JSON object; empty for non-JSON or non-object bodies."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _describe(exc: BaseException) -> str:
    if isinstance(exc, TwilioAPIError):
        return exc.reason
    if isinstance(exc, httpx.TimeoutException):
        return "Twilio API timeout"
    return f"Twilio HTTP error: {exc}"


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    """Outcome of one gateway send.

    Attributes:
        success: Whether Twilio accepted the message
        message_sid: Twilio message SID when accepted
        reason: Failure reason, user-actionable where possible
        permanent: True when retrying the same message cannot succeed
        error_code: Twilio error code, if the API returned one
        duration_ms: Time spent including internal retries
    """

    success: bool
    message_sid: str | None = None
    reason: str | None = None
    permanent: bool = False
    error_code: int | None = None
    duration_ms: int | None = None

    @classmethod
    def success_result(cls, message_sid: str | None, duration_ms: int | None = None) -> DeliveryResult:
        return cls(success=True, message_sid=message_sid, duration_ms=duration_ms)

    @classmethod
    def failure_result(
        cls,
        reason: str,
        *,
        permanent: bool = False,
        error_code: int | None = None,
        duration_ms: int | None = None,
    ) -> DeliveryResult:
        return cls(
            success=False,
            reason=reason,
            permanent=permanent,
            error_code=error_code,
            duration_ms=duration_ms,
        )


class WhatsAppGateway:
    """Outbound WhatsApp channel.

    Args:
        settings: Twilio credentials and retry policy
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
    """

    def __init__(
        self,
        settings: WhatsAppSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        auth = None
        if settings.is_configured:
            auth = httpx.BasicAuth(settings.account_sid, settings.auth_token.get_secret_value())
        self.client = httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=httpx.Timeout(settings.timeout),
            auth=auth,
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return self.settings.is_configured

    async def close(self) -> None:
        """Close the HTTP client and release connections."""
        await self.client.aclose()

    async def _post_message(self, to: str, body: str) -> dict[str, Any]:
        response = await self.client.post(
            f"/Accounts/{self.settings.account_sid}/Messages.json",
            data={"From": self.settings.whatsapp_number, "To": to, "Body": body},
        )
        payload = _json_object(response)
        if response.is_success:
            return payload

        message = payload.get("message")
        code = payload.get("code")
        raise TwilioAPIError(
            response.status_code,
            message if isinstance(message, str) else response.text,
            code if isinstance(code, int) else None,
        )

    async def send(self, address: str, body: str) -> DeliveryResult:
        """Send ``body`` to ``address`` and report the outcome."""
        if not self.is_configured:
            logger.error("WhatsApp gateway is not configured")
            whatsapp_send_total.labels(outcome="not_configured").inc()
            return DeliveryResult.failure_result(NOT_CONFIGURED_REASON)

        send_with_retry = retry(
            "twilio.send_message",
            max_attempts=self.settings.max_attempts,
            initial_delay=self.settings.retry_initial_delay,
            exponential_base=self.settings.retry_multiplier,
            max_delay=60.0,
            jitter=False,
            retry_on=(TwilioAPIError, httpx.TransportError),
            retry_if=_is_transient,
        )(self._post_message)

        start = time.perf_counter()
        try:
            data = await send_with_retry(format_address(address), body)
        except RetryError as e:
            result = DeliveryResult.failure_result(
                _describe(e.last_exception),
                error_code=getattr(e.last_exception, "code", None),
                duration_ms=_elapsed_ms(start),
            )
        except TwilioAPIError as e:
            if e.is_trial_restriction:
                logger.error(
                    "Twilio trial account restriction: recipient is not a verified number",
                    extra={"twilio_code": e.code, "status_code": e.status_code},
                )
            result = DeliveryResult.failure_result(
                e.reason,
                permanent=True,
                error_code=e.code,
                duration_ms=_elapsed_ms(start),
            )
        except httpx.HTTPError as e:
            result = DeliveryResult.failure_result(_describe(e), duration_ms=_elapsed_ms(start))
        else:
            sid = data.get("sid")
            if not isinstance(sid, str):
                logger.warning("Twilio accepted the message without a readable SID")
                sid = None
            result = DeliveryResult.success_result(sid, duration_ms=_elapsed_ms(start))

        whatsapp_send_duration_seconds.observe(time.perf_counter() - start)
        if result.success:
            whatsapp_send_total.labels(outcome="success").inc()
            logger.info("WhatsApp message sent", extra={"message_sid": result.message_sid})
        else:
            outcome = "permanent_error" if result.permanent else "transient_error"
            whatsapp_send_total.labels(outcome=outcome).inc()
            logger.warning(
                "WhatsApp message failed",
                extra={"reason": result.reason, "permanent": result.permanent},
            )
        return result


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)

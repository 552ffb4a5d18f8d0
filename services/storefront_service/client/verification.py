"""Client for the server-side payment verification endpoint."""

from typing import Optional, Protocol

import httpx
from libs.common.config import Settings, get_settings
from libs.common.logging import get_logger
from pydantic import ValidationError
from services.storefront_service.schemas import VerifyPaymentRequest, VerifyPaymentResponse

logger = get_logger(__name__)


class VerificationRejected(Exception):
    """The server answered but refused to confirm the payment."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class Verifier(Protocol):
    async def verify(
        self, request: VerifyPaymentRequest, access_token: str
    ) -> VerifyPaymentResponse: ...


class PaymentVerifier:
    def __init__(
        self,
        url: Optional[str] = None,
        *,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        settings = settings or get_settings()
        self._url = url or settings.VERIFY_PAYMENT_URL
        self._transport = transport
        self._timeout = timeout or settings.VERIFICATION_TIMEOUT_SECONDS

    async def verify(
        self, request: VerifyPaymentRequest, access_token: str
    ) -> VerifyPaymentResponse:
        """POST the reference for verification.

        Raises ``VerificationRejected`` when the server refuses, and
        ``httpx.HTTPError`` when it cannot be reached.
        """
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                self._url,
                json=request.model_dump(mode="json", by_alias=True),
                headers={"Authorization": f"Bearer {access_token}"},
            )

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error(
                "Payment verification rejected for %s: %s %s",
                request.reference,
                response.status_code,
                detail,
            )
            raise VerificationRejected(detail, response.status_code)

        try:
            result = VerifyPaymentResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(
                "Unreadable verification response for %s: %s %s",
                request.reference,
                response.status_code,
                response.text[:200],
            )
            raise VerificationRejected(
                "Payment verification returned an unreadable response", response.status_code
            ) from e
        if not result.success:
            raise VerificationRejected("Payment verification failed", response.status_code)
        return result


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return response.text

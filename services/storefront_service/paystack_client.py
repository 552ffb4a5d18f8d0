"""
Paystack API client for storefront checkout transactions.

Provides async methods for:
- Initializing a hosted checkout transaction
- Verifying a transaction by reference

Amounts cross the wire as integer pesewas (GHS minor unit).
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx
from libs.common.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class InitializedTransaction:
    """Hosted checkout session returned by /transaction/initialize."""

    authorization_url: str
    access_code: str
    reference: str


@dataclass
class VerifiedTransaction:
    """Result of /transaction/verify/:reference."""

    reference: str
    status: str  # success, failed, abandoned, ...
    amount: int  # in pesewas
    currency: str
    raw: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class PaystackError(Exception):
    """Base exception for Paystack API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(message)


class PaystackClient:
    """Async client for the Paystack Transaction API."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.PAYSTACK_SECRET_KEY
        if not self.secret_key:
            raise ValueError("PAYSTACK_SECRET_KEY is required")
        self.base_url = (base_url or settings.PAYSTACK_API_BASE_URL).rstrip("/")
        self._transport = transport
        self._headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[dict] = None,
    ) -> dict:
        """Make an async request to Paystack API."""
        url = f"{self.base_url}{endpoint}"

        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            response = await client.request(
                method=method,
                url=url,
                headers=self._headers,
                json=json_data,
            )

            try:
                data = response.json()
            except ValueError:
                data = {"message": response.text}

            if not response.is_success:
                logger.error(f"Paystack API error: {response.status_code} - {data}")
                raise PaystackError(
                    message=data.get("message", "Unknown Paystack error"),
                    status_code=response.status_code,
                    response_data=data,
                )

            if not data.get("status"):
                raise PaystackError(
                    message=data.get("message", "Paystack request failed"),
                    response_data=data,
                )

            return data

    async def initialize_transaction(
        self,
        email: str,
        amount_pesewas: int,
        reference: str,
        currency: str = "GHS",
        metadata: Optional[dict] = None,
        callback_url: Optional[str] = None,
    ) -> InitializedTransaction:
        """
        Start a hosted checkout session.

        Args:
            email: Customer email
            amount_pesewas: Amount in pesewas (cedis * 100)
            reference: Unique reference generated by the storefront
            currency: ISO currency code
            metadata: Free-form data echoed back on verification
            callback_url: Where Paystack redirects after payment

        Returns:
            InitializedTransaction with the authorization_url to open
        """
        payload = {
            "email": email,
            "amount": amount_pesewas,
            "reference": reference,
            "currency": currency,
            "metadata": metadata or {},
        }
        if callback_url:
            payload["callback_url"] = callback_url

        data = await self._request("POST", "/transaction/initialize", json_data=payload)

        session = data.get("data", {})
        return InitializedTransaction(
            authorization_url=session.get("authorization_url", ""),
            access_code=session.get("access_code", ""),
            reference=session.get("reference", reference),
        )

    async def verify_transaction(self, reference: str) -> VerifiedTransaction:
        """
        Look up the final status of a transaction.

        Raises:
            PaystackError: If Paystack does not know the reference
        """
        data = await self._request("GET", f"/transaction/verify/{reference}")

        transaction = data.get("data", {})
        return VerifiedTransaction(
            reference=transaction.get("reference", reference),
            status=transaction.get("status", "failed"),
            amount=transaction.get("amount", 0),
            currency=transaction.get("currency", "GHS"),
            raw=transaction,
        )


def paystack_enabled() -> bool:
    return bool(get_settings().PAYSTACK_SECRET_KEY)


def get_paystack_client() -> PaystackClient:
    """Get a PaystackClient instance."""
    return PaystackClient()

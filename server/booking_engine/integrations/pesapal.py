"""
Pesapal v3 payment gateway client.

https://developer.pesapal.com/
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional, Protocol

import httpx

from ..core.config import settings
from ..core.database import utcnow
from ..core.exceptions import PaymentGatewayError
from ..core.observability import get_logger, metrics_collector
from ..models.booking import PaymentStatus
from ..models.payment import PaymentMethod

logger = get_logger(__name__)

SUPPORTED_CURRENCIES = ("KES", "TZS", "UGX", "USD")

# Tokens are valid for five minutes; refresh a little early
TOKEN_LIFETIME = timedelta(minutes=5)
TOKEN_REFRESH_BUFFER = timedelta(seconds=30)

_METHOD_MAP = {
    "MPESA": PaymentMethod.MPESA,
    "M-PESA": PaymentMethod.MPESA,
    "AIRTEL MONEY": PaymentMethod.MPESA,
    "VISA": PaymentMethod.CARD,
    "MASTERCARD": PaymentMethod.CARD,
    "AMERICAN EXPRESS": PaymentMethod.CARD,
    "AMEX": PaymentMethod.CARD,
    "EQUITY": PaymentMethod.BANK_TRANSFER,
    "EQUITY BANK": PaymentMethod.BANK_TRANSFER,
    "COOPERATIVE BANK": PaymentMethod.BANK_TRANSFER,
    "CO-OP": PaymentMethod.BANK_TRANSFER,
    "PESAPAL": PaymentMethod.PAYPAL,
    "PESAPAL WALLET": PaymentMethod.PAYPAL,
}

_STATUS_MAP = {
    0: PaymentStatus.PENDING,
    1: PaymentStatus.COMPLETED,
    2: PaymentStatus.FAILED,
    3: PaymentStatus.REFUNDED,
}


def map_payment_method(gateway_method: Optional[str]) -> PaymentMethod:
    """Map a gateway payment method label to ``PaymentMethod``; unknown labels are cards."""
    if not gateway_method:
        return PaymentMethod.UNKNOWN
    return _METHOD_MAP.get(gateway_method.strip().upper(), PaymentMethod.CARD)


def map_status_code(status_code: int) -> PaymentStatus:
    """0 invalid, 1 completed, 2 failed, 3 reversed."""
    return _STATUS_MAP.get(status_code, PaymentStatus.PENDING)


def to_major_units(amount: int) -> float:
    return float(Decimal(amount) / 100)


def to_minor_units(amount: Any) -> int:
    return int((Decimal(str(amount)) * 100).to_integral_value())


@dataclass(frozen=True)
class GatewayOrder:
    merchant_reference: str
    amount: int
    currency: str
    description: str
    email: str
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


@dataclass(frozen=True)
class OrderSubmission:
    tracking_id: str
    merchant_reference: str
    redirect_url: str


@dataclass(frozen=True)
class TransactionStatus:
    status_code: int
    description: Optional[str] = None
    confirmation_code: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    merchant_reference: Optional[str] = None

    @property
    def payment_status(self) -> PaymentStatus:
        return map_status_code(self.status_code)

    @property
    def method(self) -> PaymentMethod:
        return map_payment_method(self.payment_method)


class PaymentGateway(Protocol):
    async def submit_order(self, order: GatewayOrder) -> OrderSubmission:
        ...

    async def get_transaction_status(self, tracking_id: str) -> TransactionStatus:
        ...


def _parse_expiry(value: Optional[str], now: datetime) -> datetime:
    if not value:
        return now + TOKEN_LIFETIME
    try:
        # Pesapal sends 7 fractional digits and a Z suffix
        normalized = re.sub(r"(\.\d{6})\d+", r"\1", value).replace("Z", "+00:00")
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return now + TOKEN_LIFETIME
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _error_message(data: dict[str, Any]) -> Optional[str]:
    error = data.get("error")
    if isinstance(error, dict) and (error.get("code") or error.get("message")):
        return error.get("message") or error.get("code")
    return None


class PesapalGateway:
    """Async Pesapal client with bearer-token caching."""

    def __init__(
        self,
        consumer_key: str,
        consumer_secret: str,
        api_url: str,
        ipn_id: Optional[str] = None,
        callback_url: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.ipn_id = ipn_id
        self.callback_url = callback_url
        self._client = httpx.AsyncClient(
            base_url=api_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
        )
        self._token: Optional[str] = None
        self._token_expiry: Optional[datetime] = None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, operation: str, method: str, url: str, **kwargs) -> dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            metrics_collector.record_gateway_error(operation)
            logger.error("Gateway request failed", operation=operation, error=str(e))
            raise PaymentGatewayError(f"Pesapal {operation} failed: {e}", operation) from e

        message = _error_message(data)
        if message:
            metrics_collector.record_gateway_error(operation)
            logger.error("Gateway returned an error", operation=operation, error=message)
            raise PaymentGatewayError(f"Pesapal {operation} failed: {message}", operation)
        return data

    async def get_access_token(self, now: Optional[datetime] = None) -> str:
        now = now or utcnow()
        if self._token and self._token_expiry and now < self._token_expiry - TOKEN_REFRESH_BUFFER:
            return self._token

        data = await self._request(
            "authenticate",
            "POST",
            "/api/Auth/RequestToken",
            json={"consumer_key": self.consumer_key, "consumer_secret": self.consumer_secret},
        )
        token = data.get("token")
        if not token:
            metrics_collector.record_gateway_error("authenticate")
            raise PaymentGatewayError("Pesapal authentication returned no token", "authenticate")

        self._token = token
        self._token_expiry = _parse_expiry(data.get("expiryDate"), now)
        logger.debug("Gateway token refreshed", expires_at=self._token_expiry.isoformat())
        return token

    async def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {await self.get_access_token()}"}

    async def submit_order(self, order: GatewayOrder) -> OrderSubmission:
        """
        Register an order and obtain the hosted checkout URL.

        Raises:
            PaymentGatewayError: If the order is rejected or the gateway is unreachable
        """
        currency = order.currency.upper()
        if currency not in SUPPORTED_CURRENCIES:
            raise PaymentGatewayError(
                f"Currency {currency} is not supported; use one of {', '.join(SUPPORTED_CURRENCIES)}",
                "submit_order",
            )
        if not self.ipn_id:
            raise PaymentGatewayError("Pesapal IPN id is not configured", "submit_order")

        payload = {
            "id": order.merchant_reference,
            "currency": currency,
            "amount": to_major_units(order.amount),
            "description": order.description[:100],
            "callback_url": self.callback_url,
            "notification_id": self.ipn_id,
            "billing_address": {
                "email_address": order.email,
                "phone_number": order.phone,
                "first_name": order.first_name,
                "last_name": order.last_name,
            },
        }
        data = await self._request(
            "submit_order",
            "POST",
            "/api/Transactions/SubmitOrderRequest",
            json=payload,
            headers=await self._auth_headers(),
        )

        tracking_id = data.get("order_tracking_id")
        redirect_url = data.get("redirect_url")
        if not tracking_id or not redirect_url:
            metrics_collector.record_gateway_error("submit_order")
            raise PaymentGatewayError("Pesapal order response is missing tracking id or redirect url", "submit_order")

        logger.info(
            "Gateway order submitted",
            merchant_reference=order.merchant_reference,
            tracking_id=tracking_id,
            amount=order.amount,
            currency=currency,
        )
        return OrderSubmission(
            tracking_id=tracking_id,
            merchant_reference=data.get("merchant_reference") or order.merchant_reference,
            redirect_url=redirect_url,
        )

    async def get_transaction_status(self, tracking_id: str) -> TransactionStatus:
        """
        Ask the gateway for the authoritative state of an order.

        Raises:
            PaymentGatewayError: If the gateway cannot answer
        """
        data = await self._request(
            "get_transaction_status",
            "GET",
            "/api/Transactions/GetTransactionStatus",
            params={"orderTrackingId": tracking_id},
            headers=await self._auth_headers(),
        )

        amount = data.get("amount")
        status = TransactionStatus(
            status_code=int(data.get("status_code") or 0),
            description=data.get("payment_status_description") or data.get("description"),
            confirmation_code=data.get("confirmation_code") or None,
            amount=to_minor_units(amount) if amount is not None else None,
            currency=data.get("currency"),
            payment_method=data.get("payment_method"),
            merchant_reference=data.get("merchant_reference"),
        )
        logger.info(
            "Gateway transaction status",
            tracking_id=tracking_id,
            status_code=status.status_code,
            description=status.description,
        )
        return status


_gateway: Optional[PesapalGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """Process-wide gateway client built from settings; overridable as a dependency."""
    global _gateway
    if _gateway is None:
        _gateway = PesapalGateway(
            consumer_key=settings.pesapal_consumer_key,
            consumer_secret=settings.pesapal_consumer_secret,
            api_url=settings.pesapal_api_url,
            ipn_id=settings.pesapal_ipn_id,
            callback_url=settings.pesapal_callback_url,
            timeout=settings.gateway_timeout_seconds,
        )
    return _gateway


async def close_payment_gateway() -> None:
    global _gateway
    if _gateway is not None:
        await _gateway.aclose()
        _gateway = None

# app/core/razorpay_client.py
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import razorpay
import requests
from razorpay.errors import BadRequestError, GatewayError as SDKGatewayError, ServerError

from app.core.config import get_settings
from app.core.signature import (
    PaymentConfigError,
    is_live_mode,
    is_valid_key_id,
    is_valid_key_secret,
)

logger = logging.getLogger(__name__)

_SDK_ERROR_CODES: dict[type[Exception], str] = {
    BadRequestError: "BAD_REQUEST_ERROR",
    ServerError: "SERVER_ERROR",
    SDKGatewayError: "GATEWAY_ERROR",
}


class GatewayError(RuntimeError):
    """
    Upstream Razorpay failure, carrying the provider's code/description.
    """

    def __init__(self, code: str, description: str):
        self.code = code
        self.description = description
        super().__init__(f"Razorpay API Error ({code}): {description}")


@dataclass(frozen=True)
class GatewayOrder:
    """Order as returned by Razorpay (amount in the smallest currency unit)."""

    id: str
    amount: int
    currency: str
    receipt: str | None = None


def _parse_amount(amount: Any) -> int:
    """
    Normalize an amount already expressed in minor units (paise).

    Numeric strings are accepted; booleans, other types and non-positive
    values are rejected.
    """
    if isinstance(amount, bool):
        raise ValueError("Invalid amount format")
    if isinstance(amount, str):
        try:
            amount = float(amount)
        except ValueError:
            raise ValueError("Invalid amount format")
    if not isinstance(amount, (int, float)) or amount != amount:
        raise ValueError("Invalid amount format")
    if amount <= 0:
        raise ValueError("Invalid amount provided")
    return int(round(amount))


class RazorpayGateway:
    """
    Thin wrapper around the Razorpay SDK client.

    Only order creation goes upstream; signature verification is local
    (see app.core.signature).
    """

    def __init__(self, client: Any, key_id: str, key_secret: str):
        self.client = client
        self.key_id = key_id
        self.key_secret = key_secret

    @property
    def is_live(self) -> bool:
        return is_live_mode(self.key_id)

    def _check_credentials(self) -> None:
        if not is_valid_key_id(self.key_id) or not is_valid_key_secret(
            self.key_secret
        ):
            raise PaymentConfigError(
                "Invalid Razorpay credentials. Please check your API keys."
            )

    def create_order(
        self,
        amount: Any,
        currency: str = "INR",
        notes: dict[str, str] | None = None,
    ) -> GatewayOrder:
        """
        Create a Razorpay order.

        Args:
            amount: amount in the smallest currency unit (e.g. paise).
            currency: ISO currency code.
            notes: optional key/value notes stored on the gateway order.

        Raises:
            ValueError: invalid amount (no upstream call is made).
            PaymentConfigError: malformed credentials (no upstream call).
            GatewayError: Razorpay rejected the request or was unreachable.
        """
        amount_minor = _parse_amount(amount)
        self._check_credentials()

        options = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": f"order_{int(time.time() * 1000)}",
            "notes": {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "originalAmount": str(amount),
                **(notes or {}),
            },
        }
        logger.info(
            "Creating Razorpay order: amount=%s currency=%s live=%s",
            amount_minor,
            currency,
            self.is_live,
        )

        try:
            response = self.client.order.create(data=options)
        except (BadRequestError, ServerError, SDKGatewayError) as e:
            code = next(
                c for cls, c in _SDK_ERROR_CODES.items() if isinstance(e, cls)
            )
            description = str(e)
            logger.error("Razorpay API error %s: %s", code, description)
            if code == "BAD_REQUEST_ERROR" and "key_id" in description:
                raise GatewayError(
                    code, "Invalid Razorpay Key ID. Please check your API credentials."
                ) from e
            if code == "BAD_REQUEST_ERROR" and "key_secret" in description:
                raise GatewayError(
                    code,
                    "Invalid Razorpay Key Secret. Please check your API credentials.",
                ) from e
            raise GatewayError(code, description) from e
        except requests.RequestException as e:
            logger.error("Razorpay unreachable: %s", e)
            raise GatewayError("NETWORK_ERROR", str(e)) from e

        order = GatewayOrder(
            id=response["id"],
            amount=response["amount"],
            currency=response["currency"],
            receipt=response.get("receipt"),
        )
        logger.info("Razorpay order created: %s", order.id)
        return order


@lru_cache
def razorpay_gateway() -> RazorpayGateway:
    """
    Process-wide gateway built from RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET.
    """
    settings = get_settings()
    client = razorpay.Client(
        auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
    )
    return RazorpayGateway(
        client, settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET
    )


def get_gateway() -> RazorpayGateway:
    """FastAPI dependency (overridable in tests)."""
    return razorpay_gateway()

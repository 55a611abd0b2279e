# app/core/signature.py
import hashlib
import hmac
import logging
import re

logger = logging.getLogger(__name__)

_KEY_ID_PLACEHOLDERS = {"YOUR_KEY_ID", "rzp_live_YOUR_LIVE_KEY_ID"}
_KEY_SECRET_PLACEHOLDERS = {"YOUR_KEY_SECRET", "YOUR_LIVE_KEY_SECRET"}
_KEY_SECRET_RE = re.compile(r"^[A-Za-z0-9]{20,}$")


class PaymentConfigError(RuntimeError):
    """Razorpay credentials are missing or malformed."""


def is_valid_key_id(key_id: str | None) -> bool:
    """
    Key ids look like `rzp_test_XXXXXXXX` / `rzp_live_XXXXXXXX`.
    """
    return bool(
        key_id
        and key_id.startswith("rzp_")
        and len(key_id) > 10
        and key_id not in _KEY_ID_PLACEHOLDERS
    )


def is_valid_key_secret(key_secret: str | None) -> bool:
    """
    Key secrets are alphanumeric strings, typically 24 characters.
    """
    return bool(
        key_secret
        and _KEY_SECRET_RE.match(key_secret)
        and key_secret not in _KEY_SECRET_PLACEHOLDERS
    )


def is_live_mode(key_id: str) -> bool:
    return key_id.startswith("rzp_live_")


def generate_signature(order_id: str, payment_id: str, secret: str) -> str:
    """
    HMAC-SHA256 of "<order_id>|<payment_id>", hex encoded.

    This is the signature Razorpay attaches to a successful checkout
    callback.
    """
    message = f"{order_id}|{payment_id}"
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_payment_signature(
    order_id: str | None,
    payment_id: str | None,
    signature: str | None,
    secret: str | None,
) -> bool:
    """
    Check a checkout callback against the shared key secret.

    Args:
        order_id: razorpay_order_id returned by the hosted checkout.
        payment_id: razorpay_payment_id returned by the hosted checkout.
        signature: razorpay_signature returned by the hosted checkout.
        secret: configured RAZORPAY_KEY_SECRET.

    Returns:
        True iff the recomputed digest equals `signature`.

    Raises:
        ValueError: if any of the callback fields is missing.
        PaymentConfigError: if the secret does not look like a key secret.
    """
    if not order_id or not payment_id or not signature:
        raise ValueError("Missing required payment verification parameters")

    if not is_valid_key_secret(secret):
        raise PaymentConfigError(
            "Invalid Razorpay Key Secret for payment verification"
        )

    expected = generate_signature(order_id, payment_id, secret)  # type: ignore[arg-type]
    is_valid = signature == expected
    logger.info("Payment verification result for %s: %s", order_id, is_valid)
    return is_valid

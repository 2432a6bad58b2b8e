# FILE: portrait_backend/services/payments.py
"""
Payment gate for full-resolution downloads

Checkout itself happens in the client against Stripe; the backend only
confirms that a PaymentIntent has succeeded for the configured amount
before the full-size generation runs. Each succeeded intent pays for one
delivered generation, tracked in a PaymentLedger.
"""
import logging
import re
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import stripe

from portrait_backend.config import Settings, get_settings
from portrait_backend.constants import MAX_PAYMENT_AMOUNT, MIN_PAYMENT_AMOUNT

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"usd": "$", "eur": "€", "gbp": "£"}

# PaymentIntent metadata key naming the uploaded image the payment is for
IMAGE_ID_METADATA_KEY = "image_id"

_PAYMENT_INTENT_ID = re.compile(r"^pi_[A-Za-z0-9_]{1,255}$")


class PaymentStatus(str, Enum):
    SUCCEEDED = "succeeded"
    PENDING = "pending"
    FAILED = "failed"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class PaymentVerification:
    status: PaymentStatus
    transaction_id: str
    amount: int = 0
    currency: str = ""
    reason: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentStatus.SUCCEEDED

    def covers_image(self, image_id: str) -> bool:
        """True unless the intent names a different image"""
        bound = self.metadata.get(IMAGE_ID_METADATA_KEY)
        return not bound or bound == image_id


def validate_payment_amount(amount: int) -> bool:
    """Amount in cents within the accepted checkout range"""
    return MIN_PAYMENT_AMOUNT <= amount <= MAX_PAYMENT_AMOUNT


def is_valid_payment_intent_id(transaction_id: str) -> bool:
    return bool(_PAYMENT_INTENT_ID.match(transaction_id or ""))


def format_price(amount: int, currency: str = "usd") -> str:
    symbol = CURRENCY_SYMBOLS.get(currency.lower())
    value = f"{amount / 100:.2f}"
    if symbol:
        return f"{symbol}{value}"
    return f"{value} {currency.upper()}"


def get_price_info(settings: Optional[Settings] = None) -> Dict[str, Any]:
    settings = settings or get_settings()
    return {
        "amount": settings.download_price,
        "currency": settings.currency,
        "formatted": format_price(settings.download_price, settings.currency),
    }


class PaymentVerifier:
    """Confirms that a transaction has been paid"""

    name = "base"

    def verify(self, transaction_id: str) -> PaymentVerification:
        raise NotImplementedError


class StripePaymentVerifier(PaymentVerifier):
    """Looks up a PaymentIntent with the Stripe SDK"""

    name = "stripe"

    # PaymentIntent statuses that may still turn into a success
    _PENDING_STATUSES = {
        "processing",
        "requires_action",
        "requires_capture",
        "requires_confirmation",
        "requires_payment_method",
    }

    def __init__(self, secret_key: Optional[str], expected_amount: int, currency: str = "usd"):
        self.secret_key = secret_key
        self.expected_amount = expected_amount
        self.currency = currency.lower()
        logger.info(f"Stripe payment verifier: configured={bool(secret_key)} amount={expected_amount}")

    def verify(self, transaction_id: str) -> PaymentVerification:
        if not self.secret_key:
            return PaymentVerification(
                status=PaymentStatus.ERROR,
                transaction_id=transaction_id,
                reason="Stripe secret key is not configured",
            )

        if not is_valid_payment_intent_id(transaction_id):
            logger.warning(f"Rejected malformed payment intent id {transaction_id!r}")
            return PaymentVerification(
                status=PaymentStatus.NOT_FOUND,
                transaction_id=transaction_id,
                reason="Malformed payment intent id",
            )

        try:
            intent = stripe.PaymentIntent.retrieve(transaction_id, api_key=self.secret_key)
        except stripe.InvalidRequestError as e:
            logger.warning(f"Stripe has no payment intent {transaction_id}: {e}")
            return PaymentVerification(
                status=PaymentStatus.NOT_FOUND,
                transaction_id=transaction_id,
                reason="Payment not found",
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe lookup failed for {transaction_id}: {e}")
            return PaymentVerification(
                status=PaymentStatus.ERROR,
                transaction_id=transaction_id,
                reason=f"Payment lookup failed: {e}",
            )

        status = getattr(intent, "status", None)
        amount = int(getattr(intent, "amount_received", None) or 0)
        currency = (getattr(intent, "currency", None) or "").lower()
        metadata = self._metadata(intent)

        if status == "succeeded":
            if amount < self.expected_amount or currency != self.currency:
                logger.warning(
                    f"Payment {transaction_id} succeeded with {amount} {currency}, "
                    f"expected {self.expected_amount} {self.currency}"
                )
                return PaymentVerification(
                    status=PaymentStatus.FAILED,
                    transaction_id=transaction_id,
                    amount=amount,
                    currency=currency,
                    reason="Payment amount does not match the download price",
                )
            return PaymentVerification(
                status=PaymentStatus.SUCCEEDED,
                transaction_id=transaction_id,
                amount=amount,
                currency=currency,
                metadata=metadata,
            )

        if status in self._PENDING_STATUSES:
            return PaymentVerification(
                status=PaymentStatus.PENDING,
                transaction_id=transaction_id,
                amount=amount,
                currency=currency,
                reason=f"Payment is {status}",
            )

        return PaymentVerification(
            status=PaymentStatus.FAILED,
            transaction_id=transaction_id,
            amount=amount,
            currency=currency,
            reason=f"Payment is {status or 'unknown'}",
        )

    @staticmethod
    def _metadata(intent: Any) -> Dict[str, str]:
        metadata = getattr(intent, "metadata", None)
        image_id = getattr(metadata, IMAGE_ID_METADATA_KEY, None) if metadata is not None else None
        return {IMAGE_ID_METADATA_KEY: str(image_id)} if image_id else {}


class DevPaymentVerifier(PaymentVerifier):
    """Accepts any transaction id; never used in production"""

    name = "dev"

    def __init__(self, amount: int, currency: str = "usd"):
        self.amount = amount
        self.currency = currency

    def verify(self, transaction_id: str) -> PaymentVerification:
        logger.warning(f"Dev payment verifier accepted {transaction_id} without a lookup")
        return PaymentVerification(
            status=PaymentStatus.SUCCEEDED,
            transaction_id=transaction_id,
            amount=self.amount,
            currency=self.currency,
        )


def create_payment_verifier(settings: Settings) -> PaymentVerifier:
    if not validate_payment_amount(settings.download_price):
        raise RuntimeError(
            f"DOWNLOAD_PRICE must be between {MIN_PAYMENT_AMOUNT} and {MAX_PAYMENT_AMOUNT} cents"
        )

    if settings.payment_verifier == "dev":
        if settings.is_production():
            raise RuntimeError("PAYMENT_VERIFIER=dev cannot be used when ENVIRONMENT=production")
        return DevPaymentVerifier(amount=settings.download_price, currency=settings.currency)

    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY not set; full-size downloads will be refused")
    return StripePaymentVerifier(
        secret_key=settings.stripe_secret_key,
        expected_amount=settings.download_price,
        currency=settings.currency,
    )


class PaymentLedger:
    """Records which payments have already paid for a delivered generation"""

    def claim(self, transaction_id: str) -> bool:
        """Atomically mark transaction_id as used; False if it already was"""
        raise NotImplementedError

    def release(self, transaction_id: str) -> None:
        """Give a claimed payment back after a failed generation"""
        raise NotImplementedError

    def is_claimed(self, transaction_id: str) -> bool:
        raise NotImplementedError

    def items(self) -> List[str]:
        raise NotImplementedError


class InMemoryPaymentLedger(PaymentLedger):
    """Single-process ledger (dict guarded by a lock)"""

    def __init__(self):
        self._claimed: Dict[str, float] = {}
        self._lock = threading.Lock()

    def claim(self, transaction_id: str) -> bool:
        with self._lock:
            if transaction_id in self._claimed:
                return False
            self._claimed[transaction_id] = time.time()
            return True

    def release(self, transaction_id: str) -> None:
        with self._lock:
            self._claimed.pop(transaction_id, None)

    def is_claimed(self, transaction_id: str) -> bool:
        with self._lock:
            return transaction_id in self._claimed

    def items(self) -> List[str]:
        with self._lock:
            return list(self._claimed)


_verifier: Optional[PaymentVerifier] = None
_ledger: Optional[PaymentLedger] = None


def get_payment_verifier() -> PaymentVerifier:
    """Get or create the process-wide payment verifier"""
    global _verifier
    if _verifier is None:
        _verifier = create_payment_verifier(get_settings())
    return _verifier


def set_payment_verifier(verifier: Optional[PaymentVerifier]) -> None:
    global _verifier
    _verifier = verifier


def get_payment_ledger() -> PaymentLedger:
    """Get or create the process-wide payment ledger"""
    global _ledger
    if _ledger is None:
        _ledger = InMemoryPaymentLedger()
    return _ledger


def set_payment_ledger(ledger: Optional[PaymentLedger]) -> None:
    global _ledger
    _ledger = ledger

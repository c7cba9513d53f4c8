from datetime import datetime
from typing import Iterable

from jobboard.core.errors import InputValidationError
from jobboard.models.payment import Payment, PaymentStatus, PaymentSummary
from jobboard.models.profile import PaymentMethod, PaymentMethodCreate, PaymentMethodType

# Required form fields per method type, as (attribute, camelCase name)
REQUIRED_METHOD_FIELDS = {
    PaymentMethodType.CARD: [
        ("card_number", "cardNumber"),
        ("expiry_date", "expiryDate"),
        ("cvv", "cvv"),
        ("cardholder_name", "cardholderName"),
    ],
    PaymentMethodType.BANK: [
        ("bank_account", "bankAccount"),
        ("routing_number", "routingNumber"),
    ],
    PaymentMethodType.PAYPAL: [
        ("paypal_email", "paypalEmail"),
    ],
}

MISSING_METHOD_MESSAGES = {
    PaymentMethodType.CARD: "Please fill in all card details",
    PaymentMethodType.BANK: "Please fill in all bank details",
    PaymentMethodType.PAYPAL: "Please enter PayPal email",
}


def _digits(value: str) -> str:
    return "".join(ch for ch in value if ch.isdigit()) or value.strip()


def card_brand(card_number: str) -> str:
    number = _digits(card_number)
    if number.startswith("4"):
        return "Visa"
    if number.startswith(("5", "2")):
        return "Mastercard"
    if number.startswith("3"):
        return "Amex"
    return "Card"


def missing_method_fields(data: PaymentMethodCreate) -> list[str]:
    return [
        alias
        for attr, alias in REQUIRED_METHOD_FIELDS[data.type]
        if not getattr(data, attr).strip()
    ]


def build_payment_method(data: PaymentMethodCreate, method_id: str, is_default: bool) -> PaymentMethod:
    """
    Validate the form for its type and keep only what is safe to store.
    Raises InputValidationError naming every missing field.
    """
    missing = missing_method_fields(data)
    if missing:
        raise InputValidationError(MISSING_METHOD_MESSAGES[data.type], missing)

    if data.type == PaymentMethodType.CARD:
        return PaymentMethod(
            id=method_id,
            type=PaymentMethodType.CARD,
            last4=_digits(data.card_number)[-4:],
            brand=card_brand(data.card_number),
            cardholder_name=data.cardholder_name.strip(),
            expiry_date=data.expiry_date.strip(),
            is_default=is_default,
        )
    if data.type == PaymentMethodType.BANK:
        return PaymentMethod(
            id=method_id,
            type=PaymentMethodType.BANK,
            last4=_digits(data.bank_account)[-4:],
            routing_number=data.routing_number.strip(),
            is_default=is_default,
        )
    return PaymentMethod(
        id=method_id,
        type=PaymentMethodType.PAYPAL,
        email=data.paypal_email.strip(),
        is_default=is_default,
    )


def summarize_payments(payments: Iterable[Payment], now: datetime) -> PaymentSummary:
    summary = PaymentSummary()
    for payment in payments:
        if payment.status == PaymentStatus.COMPLETED:
            summary.total_paid += payment.amount
        elif payment.status == PaymentStatus.PENDING:
            summary.total_pending += payment.amount
        elif payment.status == PaymentStatus.PROCESSING:
            summary.total_processing += payment.amount

        ts = payment.timestamp.astimezone(now.tzinfo) if now.tzinfo else payment.timestamp
        if ts.year == now.year and ts.month == now.month:
            summary.this_month += payment.amount
    return summary

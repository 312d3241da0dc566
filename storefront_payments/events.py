"""
Normalization of Moolre payment payloads.

The provider has shipped several spellings of the merchant reference field and
several success values over time. Everything downstream only sees
``PaymentEvent``.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import BaseModel

from storefront_payments.errors import InvalidRequest

logger = logging.getLogger(__name__)

ORDER_REF_FIELDS = ("externalref", "orderRef", "external_reference")
SUCCESS_STATUSES = {"success", "successful", "completed", "paid"}
AMOUNT_EPSILON = Decimal("0.01")


class PaymentEvent(BaseModel):
    order_ref: str
    status: Any = None
    provider_ref: Optional[str] = None
    amount: Optional[Decimal] = None
    message: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return is_success_status(self.status)


def is_success_status(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return value == 1
    text = str(value).strip().lower()
    return text in SUCCESS_STATUSES or text == "1"


def provider_reports_success(result: Any) -> bool:
    if not isinstance(result, dict):
        return False
    data = result.get("data")
    if isinstance(data, dict) and is_success_status(data.get("status")):
        return True
    return is_success_status(result.get("status"))


def parse_amount(value: Any) -> Optional[Decimal]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        amount = None
    if amount is None or not amount.is_finite():
        logger.warning("Ignoring unparseable amount in payment payload: %r", value)
        return None
    return amount


def amounts_match(reported: Decimal, stored: Decimal, epsilon: Decimal = AMOUNT_EPSILON) -> bool:
    return abs(Decimal(reported) - Decimal(stored)) <= epsilon


def normalize_callback_payload(payload: dict) -> PaymentEvent:
    order_ref = None
    for field in ORDER_REF_FIELDS:
        value = payload.get(field)
        if value is not None and str(value).strip():
            order_ref = str(value).strip()
            break

    if order_ref is None:
        raise InvalidRequest("Invalid callback data")

    reference = payload.get("reference")
    message = payload.get("message")

    return PaymentEvent(
        order_ref=order_ref,
        status=payload.get("status"),
        provider_ref=str(reference) if reference not in (None, "") else None,
        amount=parse_amount(payload.get("amount")),
        message=str(message) if message else None,
    )

from decimal import Decimal

import pytest

from storefront_payments.errors import InvalidRequest
from storefront_payments.events import (
    amounts_match,
    is_success_status,
    normalize_callback_payload,
    provider_reports_success,
)


@pytest.mark.parametrize("value", ["success", "Successful", "COMPLETED", "paid", " Paid ", 1, "1", 1.0])
def test_success_synonyms(value):
    assert is_success_status(value) is True


@pytest.mark.parametrize("value", ["pending", "declined", "failed", "", None, 0, 2, True, "succeeded"])
def test_non_success_values(value):
    assert is_success_status(value) is False


@pytest.mark.parametrize("field", ["externalref", "orderRef", "external_reference"])
def test_order_reference_aliases(field):
    event = normalize_callback_payload({field: " SL-1001 ", "status": "success"})

    assert event.order_ref == "SL-1001"
    assert event.is_success is True


def test_first_non_empty_alias_wins():
    event = normalize_callback_payload({"externalref": "", "orderRef": "SL-2"})

    assert event.order_ref == "SL-2"


def test_normalized_event_fields():
    event = normalize_callback_payload({
        "externalref": "SL-1",
        "status": "failed",
        "reference": 98765,
        "amount": "12.50",
        "message": "Declined by issuer",
    })

    assert event.provider_ref == "98765"
    assert event.amount == Decimal("12.50")
    assert event.message == "Declined by issuer"
    assert event.is_success is False


@pytest.mark.parametrize("amount", ["GHS twelve", "NaN", "Infinity", "-Infinity", "sNaN"])
def test_unparseable_amount_is_dropped(amount):
    event = normalize_callback_payload({"externalref": "SL-1", "status": "success", "amount": amount})

    assert event.amount is None


def test_missing_reference_is_invalid():
    with pytest.raises(InvalidRequest):
        normalize_callback_payload({"status": "success", "reference": "MLR-1"})


def test_amounts_match_within_epsilon():
    assert amounts_match(Decimal("150.004"), Decimal("150.00"))
    assert amounts_match(Decimal("150"), Decimal("150.00"))
    assert not amounts_match(Decimal("149.90"), Decimal("150.00"))


@pytest.mark.parametrize("result, expected", [
    ({"status": 1, "data": {"status": "pending"}}, True),
    ({"status": 0, "data": {"status": "Successful"}}, True),
    ({"status": "completed"}, True),
    ({"status": 0, "data": {"status": "pending"}}, False),
    ({"data": None}, False),
    ([], False),
])
def test_provider_reports_success(result, expected):
    assert provider_reports_success(result) is expected

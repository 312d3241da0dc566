from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from storefront_payments.models import Customer, Order, OrderStatus, PaymentStatus, utcnow


@dataclass
class MarkPaidResult:
    order: Order
    applied: bool  # False when another caller already marked the order paid


def find_order_by_number(db: Session, order_number: str) -> Optional[Order]:
    return db.scalar(select(Order).where(Order.order_number == order_number))


def mark_order_paid(db: Session, order_number: str, provider_ref: Optional[str]) -> Optional[MarkPaidResult]:
    """
    Atomically move an order to ``paid``.

    The row is locked for the duration of the transaction and the write is a
    compare-and-swap on ``payment_status``, so of any number of concurrent
    callers exactly one sees ``applied=True``. Returns None if the order does
    not exist.
    """
    order = db.scalar(
        select(Order)
        .where(Order.order_number == order_number)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if order is None:
        db.rollback()
        return None

    if order.payment_status == PaymentStatus.PAID:
        db.commit()
        return MarkPaidResult(order=order, applied=False)

    meta = dict(order.meta or {})
    meta.pop("failure_reason", None)
    meta["provider_reference"] = provider_ref
    meta["payment_verified_at"] = utcnow().isoformat()

    result = db.execute(
        update(Order)
        .where(Order.order_number == order_number, Order.payment_status != PaymentStatus.PAID)
        .values({
            Order.payment_status: PaymentStatus.PAID,
            Order.status: case(
                (Order.status == OrderStatus.PENDING, OrderStatus.PROCESSING),
                else_=Order.status,
            ),
            Order.meta: meta,
        })
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(order)

    return MarkPaidResult(order=order, applied=result.rowcount == 1)


def update_order_payment_status(db: Session, order_number: str, payment_status: str, metadata: dict) -> bool:
    """Failure-path write. Paid orders are left untouched."""
    order = find_order_by_number(db, order_number)
    if order is None:
        return False

    meta = dict(order.meta or {})
    meta.update(metadata)

    result = db.execute(
        update(Order)
        .where(Order.order_number == order_number, Order.payment_status != PaymentStatus.PAID)
        .values({Order.payment_status: payment_status, Order.meta: meta})
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def record_customer_order(db: Session, email: str, amount) -> Customer:
    email = email.strip().lower()
    customer = db.scalar(
        select(Customer)
        .where(Customer.email == email)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if customer is None:
        customer = Customer(email=email, total_orders=0, total_spent=Decimal("0"))
        db.add(customer)

    customer.total_orders = (customer.total_orders or 0) + 1
    customer.total_spent = Decimal(customer.total_spent or 0) + Decimal(str(amount))
    customer.last_order_at = utcnow()
    db.commit()
    return customer


def order_to_dict(order: Order) -> dict:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "payment_status": order.payment_status,
        "total": Decimal(order.total) if order.total is not None else Decimal("0"),
        "email": order.email,
        "phone": order.phone,
        "shipping_address": dict(order.shipping_address or {}),
        "metadata": dict(order.meta or {}),
        "created_at": order.created_at,
    }

"""
Follow-up work after an order is marked paid.

Runs as a background task once the payment response has been produced. Each
step has its own error boundary so a failed email or stats write can never
turn a recorded payment into a reported failure.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from storefront_payments.database import SessionLocal
from storefront_payments.notifications import send_order_confirmation
from storefront_payments.store import record_customer_order

logger = logging.getLogger(__name__)


def update_customer_stats(order: dict) -> None:
    if not order.get("email"):
        logger.info("Order %s has no email, skipping customer stats", order.get("order_number"))
        return

    db = SessionLocal()
    try:
        record_customer_order(db, order["email"], order["total"])
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()


async def dispatch_payment_side_effects(order: dict) -> None:
    order_number = order.get("order_number")

    try:
        update_customer_stats(order)
    except Exception:
        logger.exception("Customer stats update failed for order %s (non-blocking)", order_number)

    try:
        await send_order_confirmation(order)
        logger.info("Order confirmation dispatched for %s", order_number)
    except Exception:
        logger.exception("Order confirmation failed for order %s (non-blocking)", order_number)

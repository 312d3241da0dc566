import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from storefront_payments.auth import verify_token
from storefront_payments.database import SessionLocal
from storefront_payments.errors import InvalidRequest, OrderNotFound, PersistenceFailure
from storefront_payments.events import provider_reports_success
from storefront_payments.models import PaymentStatus
from storefront_payments.moolre_service import check_payment_status, is_configured
from storefront_payments.rate_limit import VERIFY_RATE_LIMIT, limiter
from storefront_payments.side_effects import dispatch_payment_side_effects
from storefront_payments.store import find_order_by_number, mark_order_paid, order_to_dict

logger = logging.getLogger(__name__)

router = APIRouter()
admin_router = APIRouter(prefix="/admin", dependencies=[Depends(verify_token)])

STATUS_CHECK_REFERENCE = "verified-from-status-check"
ADMIN_REFERENCE = "marked-paid-by-admin"


class VerifyRequest(BaseModel):
    order_number: Optional[str] = Field(default=None, alias="orderNumber")


class MarkPaidRequest(BaseModel):
    reference: Optional[str] = None


def _payment_state(order, success, message):
    return {
        "success": success,
        "status": order.status,
        "payment_status": order.payment_status,
        "message": message,
    }


async def _provider_confirms(order_number: str) -> bool:
    if not is_configured():
        return False
    try:
        result = await check_payment_status(order_number)
    except Exception as exc:
        # Unreachable or misbehaving provider means "not yet confirmed"
        logger.warning("[Verify] Moolre status check failed for %s: %s", order_number, exc)
        return False

    logger.info("[Verify] Moolre status check result for %s: %s", order_number, result)
    return provider_reports_success(result)


@router.post("/api/payment/moolre/verify")
@limiter.limit(VERIFY_RATE_LIMIT)
async def verify_payment(request: Request, body: VerifyRequest, background_tasks: BackgroundTasks):
    order_number = (body.order_number or "").strip()
    if not order_number:
        raise InvalidRequest("Missing orderNumber")

    logger.info("[Verify] Checking payment status for %s", order_number)

    db = SessionLocal()
    try:
        order = find_order_by_number(db, order_number)
        if order is None:
            raise OrderNotFound()

        if order.payment_status == PaymentStatus.PAID:
            return _payment_state(order, True, "Order already paid")

        if not await _provider_confirms(order_number):
            logger.info("[Verify] Could not confirm payment for %s", order_number)
            return _payment_state(
                order, False, "Payment not yet confirmed. The callback may still be processing."
            )

        result = mark_order_paid(db, order_number, STATUS_CHECK_REFERENCE)
        if result is None:
            raise OrderNotFound()

        if not result.applied:
            return _payment_state(result.order, True, "Order already paid")

        background_tasks.add_task(dispatch_payment_side_effects, order_to_dict(result.order))
        logger.info("[Verify] Moolre confirmed payment for %s", order_number)
        return _payment_state(result.order, True, "Payment verified and order updated")
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("[Verify] Database error for %s", order_number)
        raise PersistenceFailure() from exc
    finally:
        db.close()


@admin_router.get("/orders/{order_number}/payment")
def get_order_payment(order_number: str):
    db = SessionLocal()
    try:
        order = find_order_by_number(db, order_number)
        if order is None:
            raise OrderNotFound()
        return {
            "order_number": order.order_number,
            "status": order.status,
            "payment_status": order.payment_status,
            "total": str(order.total),
            "metadata": order.meta or {},
        }
    finally:
        db.close()


@admin_router.post("/orders/{order_number}/mark-paid")
def admin_mark_paid(
    order_number: str,
    background_tasks: BackgroundTasks,
    body: Optional[MarkPaidRequest] = None,
    claims: dict = Depends(verify_token),
):
    reference = (body.reference if body else None) or ADMIN_REFERENCE

    db = SessionLocal()
    try:
        result = mark_order_paid(db, order_number, reference)
        if result is None:
            raise OrderNotFound()

        if not result.applied:
            return _payment_state(result.order, True, "Order already paid")

        logger.info("Order %s marked paid by %s", order_number, claims.get("sub"))
        background_tasks.add_task(dispatch_payment_side_effects, order_to_dict(result.order))
        return _payment_state(result.order, True, "Order marked as paid")
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Admin mark-paid failed for %s", order_number)
        raise PersistenceFailure() from exc
    finally:
        db.close()

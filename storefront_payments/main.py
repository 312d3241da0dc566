import logging
import os
from pathlib import Path
from dotenv import load_dotenv
from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

from storefront_payments.routes import router, admin_router
from storefront_payments.database import Base, engine, SessionLocal
from storefront_payments.errors import InvalidRequest, OrderNotFound, PaymentError, PersistenceFailure
from storefront_payments.events import amounts_match, normalize_callback_payload
from storefront_payments.models import PaymentStatus, utcnow
from storefront_payments.rate_limit import CALLBACK_RATE_LIMIT, limiter, rate_limit_exceeded_handler
from storefront_payments.side_effects import dispatch_payment_side_effects
from storefront_payments.store import (
    find_order_by_number,
    mark_order_paid,
    order_to_dict,
    update_order_payment_status,
)

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Storefront Payment Reconciliation")
app.state.limiter = limiter

app.include_router(router)
app.include_router(admin_router)

Base.metadata.create_all(bind=engine)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return await payment_error_handler(request, InvalidRequest())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return await payment_error_handler(request, PersistenceFailure())


app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


async def read_callback_payload(request: Request) -> dict:
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith(FORM_CONTENT_TYPES):
            form = await request.form()
            # File parts carry no payment fields
            payload = {key: value for key, value in form.items() if isinstance(value, str)}
        else:
            payload = await request.json()
    except ValueError as exc:
        raise InvalidRequest("Invalid callback data") from exc

    if not isinstance(payload, dict):
        raise InvalidRequest("Invalid callback data")
    return payload


@app.get("/api/payment/moolre/callback")
def moolre_callback_ready():
    return {"message": "Moolre callback endpoint ready"}


@app.post("/api/payment/moolre/callback")
@limiter.limit(CALLBACK_RATE_LIMIT)
async def moolre_callback(request: Request, background_tasks: BackgroundTasks):
    payload = await read_callback_payload(request)
    event = normalize_callback_payload(payload)
    logger.info(
        "Moolre callback received for %s (status=%r, reference=%s)",
        event.order_ref, event.status, event.provider_ref,
    )

    db = SessionLocal()
    try:
        order = find_order_by_number(db, event.order_ref)
        if order is None:
            raise OrderNotFound()

        if order.payment_status == PaymentStatus.PAID:
            logger.info("Order %s already paid, ignoring duplicate callback", event.order_ref)
            return {"success": True, "message": "Order already processed"}

        if not event.is_success:
            logger.info("Payment failed/pending for order %s, status: %r", event.order_ref, event.status)
            update_order_payment_status(db, event.order_ref, PaymentStatus.FAILED, {
                "provider_reference": event.provider_ref,
                "failure_reason": event.message or "Payment failed",
                "failed_at": utcnow().isoformat(),
            })
            return {"success": False, "message": "Payment reported as not successful"}

        if event.amount is not None and not amounts_match(event.amount, order.total):
            logger.warning(
                "Amount mismatch for order %s: callback reported %s, order total is %s",
                event.order_ref, event.amount, order.total,
            )

        result = mark_order_paid(db, event.order_ref, event.provider_ref)
        if result is None:
            raise OrderNotFound()

        if not result.applied:
            logger.info("Order %s was marked paid concurrently", event.order_ref)
            return {"success": True, "message": "Order already processed"}

        background_tasks.add_task(dispatch_payment_side_effects, order_to_dict(result.order))
        logger.info("Payment recorded for order %s", event.order_ref)
        return {"success": True, "message": "Payment verified and order updated"}
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Database error while processing callback for %s", event.order_ref)
        raise PersistenceFailure() from exc
    finally:
        db.close()

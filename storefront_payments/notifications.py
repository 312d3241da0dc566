"""
Customer and staff notifications.

Email goes through the Resend HTTP API, SMS through Moolre's SMS gateway.
Every sender degrades to a logged warning when its credentials are missing
or the remote call fails; nothing here raises on delivery problems.
"""

import logging
import os
import re
from html import escape
from pathlib import Path
from typing import Optional

import httpx
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"
MOOLRE_SMS_URL = "https://api.moolre.com/open/sms/send"
NOTIFY_TIMEOUT = 10.0


def format_phone_number(phone: str) -> str:
    digits = re.sub(r"\D", "", phone)
    if digits.startswith("0"):
        digits = "233" + digits[1:]
    if len(digits) == 9:
        digits = "233" + digits
    return digits


async def send_email(to: str, subject: str, html: str) -> Optional[dict]:
    api_key = os.getenv("RESEND_API_KEY")
    if not api_key:
        logger.warning("RESEND_API_KEY is missing. Email to %s not sent.", to)
        return None

    try:
        async with httpx.AsyncClient(timeout=NOTIFY_TIMEOUT) as client:
            response = await client.post(
                RESEND_URL,
                headers={"Authorization": f"Bearer {api_key}"},
                json={
                    "from": os.getenv("NOTIFY_FROM_EMAIL", "Orders <orders@example.com>"),
                    "to": to,
                    "subject": subject,
                    "html": html,
                },
            )
            response.raise_for_status()
            return response.json()
    except httpx.HTTPError as exc:
        logger.error("Email to %s failed: %s", to, exc)
        return None


async def send_sms(to: str, message: str) -> Optional[dict]:
    # Dedicated SMS credentials fall back to the payment ones
    user = os.getenv("MOOLRE_SMS_API_USER") or os.getenv("MOOLRE_API_USER")
    pubkey = os.getenv("MOOLRE_SMS_API_PUBKEY") or os.getenv("MOOLRE_API_PUBKEY")
    vaskey = os.getenv("MOOLRE_SMS_API_KEY") or os.getenv("MOOLRE_API_KEY")

    if not (user and pubkey and vaskey):
        logger.warning("Missing Moolre SMS credentials. SMS to %s not sent.", to)
        return None

    recipient = format_phone_number(to)
    try:
        async with httpx.AsyncClient(timeout=NOTIFY_TIMEOUT) as client:
            response = await client.post(
                MOOLRE_SMS_URL,
                headers={
                    "X-API-VASKEY": vaskey,
                    "X-API-USER": user,
                    "X-API-PUBKEY": pubkey,
                },
                json={
                    "type": 1,
                    "senderid": os.getenv("SMS_SENDER_ID", "Storefront"),
                    "messages": [{"recipient": recipient, "message": message}],
                },
            )
            response.raise_for_status()
            return response.json()
    except httpx.HTTPError as exc:
        logger.error("SMS to %s failed: %s", recipient, exc)
        return None


def _customer_name(order: dict) -> str:
    address = order.get("shipping_address") or {}
    return address.get("full_name") or address.get("firstName") or "Customer"


def _customer_phone(order: dict) -> Optional[str]:
    address = order.get("shipping_address") or {}
    return order.get("phone") or address.get("phone")


async def send_order_confirmation(order: dict) -> None:
    reference = order.get("order_number") or order.get("id")
    name = _customer_name(order)
    phone = _customer_phone(order)
    total = f"GH₵{order['total']:.2f}"
    store_name = os.getenv("STORE_NAME", "our store")

    logger.info("Preparing confirmation for order #%s (sms=%s)", reference, bool(phone))

    if order.get("email"):
        await send_email(
            to=order["email"],
            subject=f"Order Confirmation #{reference}",
            html=(
                "<h1>Order Confirmation</h1>"
                f"<p>Hi {escape(name)},</p>"
                "<p>Thank you for your order! We've received it and are getting it ready.</p>"
                f"<p><strong>Order ID:</strong> {escape(str(reference))}</p>"
                f"<p><strong>Total:</strong> {total}</p>"
                "<p>We will notify you when your order ships.</p>"
            ),
        )

    app_url = os.getenv("APP_URL", "http://localhost:3000")
    await send_email(
        to=os.getenv("ADMIN_EMAIL", "admin@example.com"),
        subject=f"New Order #{reference}",
        html=(
            "<h1>New Order Received</h1>"
            f"<p><strong>Order ID:</strong> {escape(str(reference))}</p>"
            f"<p><strong>Customer:</strong> {escape(name)} ({escape(order.get('email') or '')})</p>"
            f"<p><strong>Total:</strong> {total}</p>"
            f"<p><a href=\"{app_url}/admin/orders/{order.get('id')}\">View Order</a></p>"
        ),
    )

    if phone:
        await send_sms(
            to=phone,
            message=f"Hi {name}, thanks for your order #{reference} at {store_name}! We will update you when it ships.",
        )

import os
from pathlib import Path
from dotenv import load_dotenv
import httpx

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

DEFAULT_STATUS_URL = "https://api.moolre.com/embed/status"


def is_configured():
    return bool(os.getenv("MOOLRE_API_USER") and os.getenv("MOOLRE_API_PUBKEY"))


def _timeout():
    return float(os.getenv("MOOLRE_TIMEOUT", "10"))


async def check_payment_status(order_number: str) -> dict:
    """Ask Moolre for the status of a merchant reference. Raises on any transport or HTTP error."""
    async with httpx.AsyncClient(timeout=_timeout()) as client:
        response = await client.post(
            os.getenv("MOOLRE_STATUS_URL", DEFAULT_STATUS_URL),
            headers={
                "X-API-USER": os.getenv("MOOLRE_API_USER", ""),
                "X-API-PUBKEY": os.getenv("MOOLRE_API_PUBKEY", ""),
            },
            json={"externalref": order_number},
        )
        response.raise_for_status()
        return response.json()

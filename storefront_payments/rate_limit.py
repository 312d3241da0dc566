import os
from pathlib import Path
from dotenv import load_dotenv

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

CALLBACK_RATE_LIMIT = os.getenv("CALLBACK_RATE_LIMIT", "60/minute")
VERIFY_RATE_LIMIT = os.getenv("VERIFY_RATE_LIMIT", "20/minute")

limiter = Limiter(key_func=get_remote_address)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    retry_after = exc.limit.limit.get_expiry()
    return JSONResponse(
        status_code=429,
        content={"success": False, "message": "Too many requests. Please try again later."},
        headers={"Retry-After": str(retry_after)},
    )

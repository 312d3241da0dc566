import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from fastapi import Header, HTTPException
from jose import JWTError, jwt

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

STAFF_ROLES = {"admin", "staff"}


def verify_token(authorization: Optional[str] = Header(None)):
    try:
        scheme, token = (authorization or "").split()
        if scheme.lower() != "bearer":
            raise ValueError("unsupported scheme")
        claims = jwt.decode(token, os.getenv("JWT_SECRET"), algorithms=["HS256"])
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")

    if claims.get("role") not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail="Staff access required")
    return claims

import os
from pathlib import Path
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set. Check your .env file.")


def engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Writers are serialized by SQLite itself; the CAS update in store.py does the rest
        return {"connect_args": {"check_same_thread": False}}
    # mark_order_paid holds a row lock (SELECT ... FOR UPDATE) and re-checks payment_status on write
    return {"isolation_level": "READ COMMITTED", "pool_pre_ping": True}


engine = create_engine(DATABASE_URL, **engine_options(DATABASE_URL))

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


class Base(DeclarativeBase):
    pass

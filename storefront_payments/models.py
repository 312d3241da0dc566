from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, JSON, Numeric, String
from storefront_payments.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class PaymentStatus:
    UNPAID = "unpaid"
    PAID = "paid"
    FAILED = "failed"


class OrderStatus:
    PENDING = "pending"
    PROCESSING = "processing"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String, unique=True, index=True, nullable=False)  # merchant reference sent to Moolre
    status = Column(String, nullable=False, default=OrderStatus.PENDING)
    payment_status = Column(String, nullable=False, default=PaymentStatus.UNPAID)  # unpaid | paid | failed
    total = Column(Numeric(12, 2), nullable=False)
    email = Column(String)
    phone = Column(String)
    shipping_address = Column(JSON)
    meta = Column("metadata", JSON)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, unique=True, index=True, nullable=False)
    total_orders = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(12, 2), nullable=False, default=0)
    last_order_at = Column(DateTime(timezone=True))

from sqlalchemy import JSON, Column, DateTime, Integer, String

from market.config import settings
from market.models.database import Base


class Order(Base):
    __tablename__ = settings.ORDERS_TABLE

    order_id = Column(String(36), primary_key=True)
    item_ids = Column(JSON, nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    total_amount = Column(Integer, nullable=False)  # minor units
    customer_email = Column(String(255), nullable=False)
    payment_method = Column(String(50), nullable=False)
    payment_id = Column(String(255), nullable=False)
    status = Column(String(32), nullable=False)  # PendingPayment | PaymentSucceeded | PaymentFailed | Fulfilled
    created_at = Column(DateTime(timezone=True), nullable=False)

from sqlalchemy import Column, DateTime, String

from market.config import settings
from market.models.database import Base


class Payment(Base):
    __tablename__ = settings.PAYMENTS_TABLE

    payment_id = Column(String(255), primary_key=True)
    order_id = Column(String(36), nullable=False, index=True)
    payment_method = Column(String(50), nullable=False)
    status = Column(String(32), nullable=False)  # Pending | PaymentSucceeded | PaymentFailed
    provider = Column(String(100), nullable=True)
    transaction_id = Column(String(255), nullable=True)
    receipt_url = Column(String(1024), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

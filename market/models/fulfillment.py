from sqlalchemy import Column, DateTime, String

from market.config import settings
from market.models.database import Base


class Fulfillment(Base):
    __tablename__ = settings.FULFILLMENT_TABLE

    # One row per order: the primary key is what makes issuance exactly-once.
    order_id = Column(String(36), primary_key=True)
    payment_id = Column(String(255), nullable=False)
    license_key = Column(String(255), nullable=False)
    provider = Column(String(100), nullable=True)
    receipt_url = Column(String(1024), nullable=True)
    transaction_id = Column(String(255), nullable=True)
    fulfilled_at = Column(DateTime(timezone=True), nullable=False)

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from market.models.database import Base


class BusEvent(Base):
    __tablename__ = "bus_events"

    id = Column(String(36), primary_key=True)
    bus_name = Column(String(128), nullable=False)
    source = Column(String(128), nullable=False, index=True)
    detail_type = Column(String(128), nullable=False, index=True)
    detail = Column(JSON, nullable=False)
    fanned_out = Column(Boolean, nullable=False, default=False, index=True)
    published_at = Column(DateTime(timezone=True), server_default=func.now())


class BusDelivery(Base):
    __tablename__ = "bus_deliveries"
    __table_args__ = (UniqueConstraint("event_id", "subscription", name="uq_bus_deliveries_event_subscription"),)

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(36), ForeignKey("bus_events.id"), nullable=False, index=True)
    subscription = Column(String(128), nullable=False)
    status = Column(String(32), nullable=False, default="pending", index=True)  # pending | in_flight | delivered | dead_lettered
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    available_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

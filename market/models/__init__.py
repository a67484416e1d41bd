from market.models.database import Base, get_db
from market.models.order import Order
from market.models.payment import Payment
from market.models.fulfillment import Fulfillment
from market.models.bus import BusDelivery, BusEvent

__all__ = ["Base", "get_db", "Order", "Payment", "Fulfillment", "BusEvent", "BusDelivery"]

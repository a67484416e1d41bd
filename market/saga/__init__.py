from market.saga.fulfillment import FulfillmentTrigger
from market.saga.intake import OrderIntake
from market.saga.settlement import PaymentSettlement
from market.saga.states import OrderStatus, PaymentStatus

__all__ = ["FulfillmentTrigger", "OrderIntake", "PaymentSettlement", "OrderStatus", "PaymentStatus"]

"""Event fan-out backed by the service database.

Publishers append an event row. A dispatcher later copies each event into
one delivery row per matching subscription, leases deliveries to handlers,
retries failures after a delay and dead-letters a delivery once its attempt
budget is spent or its failure is not retryable.

Delivery is at-least-once and unordered: a lease that expires before the
outcome is recorded makes the delivery visible again, and nothing orders
deliveries of independent events.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from fnmatch import fnmatchcase
from typing import Any, Callable
from uuid import uuid4

from sqlalchemy import and_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from market.config import SagaConfig
from market.exceptions import BusUnavailable
from market.models.bus import BusDelivery, BusEvent
from market.schemas.events import EventDetail, EventEnvelope
from market.timeutils import utcnow

logger = logging.getLogger(__name__)

PENDING = "pending"
IN_FLIGHT = "in_flight"
DELIVERED = "delivered"
DEAD_LETTERED = "dead_lettered"

Handler = Callable[[EventEnvelope, Session], None]


@dataclass(frozen=True)
class Subscription:
    """Routes events whose source and detail type match one of the glob patterns."""

    name: str
    sources: tuple[str, ...]
    detail_types: tuple[str, ...]
    handler: Handler

    def matches(self, source: str, detail_type: str) -> bool:
        return any(fnmatchcase(source, pattern) for pattern in self.sources) and any(
            fnmatchcase(detail_type, pattern) for pattern in self.detail_types
        )


@dataclass
class DispatchReport:
    delivered: int = 0
    retried: int = 0
    dead_lettered: int = 0


class EventBus:
    """Producer side of the bus."""

    def __init__(self, db: Session, bus_name: str):
        self.db = db
        self.bus_name = bus_name

    def publish(self, source: str, detail_type: str, payload: EventDetail | dict[str, Any]) -> str:
        detail = payload.to_detail() if isinstance(payload, EventDetail) else dict(payload)
        event_id = str(uuid4())
        try:
            self.db.add(
                BusEvent(
                    id=event_id,
                    bus_name=self.bus_name,
                    source=source,
                    detail_type=detail_type,
                    detail=detail,
                    fanned_out=False,
                    published_at=utcnow(),
                )
            )
            self.db.commit()
        except (OperationalError, DBAPIError) as exc:
            self.db.rollback()
            raise BusUnavailable(f"Could not publish {detail_type}: {exc}") from exc
        logger.info("Published %s from %s as event %s", detail_type, source, event_id)
        return event_id


class EventDispatcher:
    """Consumer side of the bus: fans events out and runs subscription handlers."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        subscriptions: list[Subscription],
        config: SagaConfig,
        clock: Callable[[], datetime] = utcnow,
    ):
        names = [s.name for s in subscriptions]
        if len(set(names)) != len(names):
            raise ValueError("Subscription names must be unique")
        self.session_factory = session_factory
        self.subscriptions = {s.name: s for s in subscriptions}
        self.config = config
        self.clock = clock

    def run_once(self, limit: int = 100) -> DispatchReport:
        self.fan_out(limit=limit)
        return self.dispatch_pending(limit=limit)

    def fan_out(self, limit: int = 100) -> int:
        """Create delivery rows for events not yet routed. Returns events routed."""
        routed = 0
        with self.session_factory() as db:
            event_ids = (
                db.execute(
                    select(BusEvent.id)
                    .where(BusEvent.bus_name == self.config.event_bus_name, BusEvent.fanned_out.is_(False))
                    .order_by(BusEvent.published_at)
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            for event_id in event_ids:
                event = db.get(BusEvent, event_id)
                now = self.clock()
                for subscription in self.subscriptions.values():
                    if subscription.matches(event.source, event.detail_type):
                        db.add(
                            BusDelivery(
                                event_id=event.id,
                                subscription=subscription.name,
                                status=PENDING,
                                attempts=0,
                                available_at=now,
                            )
                        )
                event.fanned_out = True
                try:
                    db.commit()
                    routed += 1
                except IntegrityError:
                    # Another dispatcher routed this event first.
                    db.rollback()
        return routed

    def dispatch_pending(self, limit: int = 100) -> DispatchReport:
        report = DispatchReport()
        with self.session_factory() as db:
            now = self.clock()
            delivery_ids = (
                db.execute(
                    select(BusDelivery.id)
                    .where(
                        BusDelivery.subscription.in_(list(self.subscriptions)),
                        BusDelivery.status.in_((PENDING, IN_FLIGHT)),
                        BusDelivery.available_at <= now,
                    )
                    .order_by(BusDelivery.available_at)
                    .limit(limit)
                )
                .scalars()
                .all()
            )
        for delivery_id in delivery_ids:
            outcome = self.deliver(delivery_id)
            if outcome == DELIVERED:
                report.delivered += 1
            elif outcome == DEAD_LETTERED:
                report.dead_lettered += 1
            elif outcome == PENDING:
                report.retried += 1
        return report

    def deliver(self, delivery_id: int) -> str | None:
        """Run one delivery. Returns its new status, or None if another worker holds it."""
        envelope, subscription = self._claim(delivery_id)
        if envelope is None:
            return None

        if envelope.attempt > self.config.max_delivery_attempts:
            # The final attempt's lease expired without an outcome being recorded.
            return self._record_failure(delivery_id, envelope, "Lease expired on final attempt", retryable=False)

        handler_db = self.session_factory()
        try:
            subscription.handler(envelope, handler_db)
        except Exception as exc:
            return self._record_failure(
                delivery_id,
                envelope,
                f"{type(exc).__name__}: {exc}",
                retryable=getattr(exc, "retryable", True),
                exc=exc,
            )
        finally:
            handler_db.close()

        with self.session_factory() as db:
            db.execute(
                update(BusDelivery)
                .where(BusDelivery.id == delivery_id)
                .values(status=DELIVERED, last_error=None, updated_at=self.clock())
            )
            db.commit()
        logger.info(
            "Delivered %s event %s to %s (attempt %s)",
            envelope.detail_type,
            envelope.id,
            subscription.name,
            envelope.attempt,
        )
        return DELIVERED

    def _claim(self, delivery_id: int) -> tuple[EventEnvelope | None, Subscription | None]:
        with self.session_factory() as db:
            now = self.clock()
            lease_until = now + timedelta(seconds=self.config.visibility_timeout_seconds)
            result = db.execute(
                update(BusDelivery)
                .where(
                    and_(
                        BusDelivery.id == delivery_id,
                        BusDelivery.status.in_((PENDING, IN_FLIGHT)),
                        BusDelivery.available_at <= now,
                    )
                )
                .values(
                    status=IN_FLIGHT,
                    attempts=BusDelivery.attempts + 1,
                    available_at=lease_until,
                    updated_at=now,
                )
            )
            db.commit()
            if result.rowcount != 1:
                return None, None

            delivery = db.get(BusDelivery, delivery_id)
            event = db.get(BusEvent, delivery.event_id)
            envelope = EventEnvelope(
                id=event.id,
                source=event.source,
                detail_type=event.detail_type,
                detail=dict(event.detail),
                attempt=delivery.attempts,
            )
            return envelope, self.subscriptions[delivery.subscription]

    def _record_failure(
        self,
        delivery_id: int,
        envelope: EventEnvelope,
        error: str,
        retryable: bool,
        exc: BaseException | None = None,
    ) -> str:
        now = self.clock()
        exhausted = envelope.attempt >= self.config.max_delivery_attempts
        if retryable and not exhausted:
            status = PENDING
            available_at = now + timedelta(seconds=self.config.retry_delay_seconds * envelope.attempt)
            logger.warning(
                "Delivery %s of %s event %s failed (attempt %s/%s), will retry: %s",
                delivery_id,
                envelope.detail_type,
                envelope.id,
                envelope.attempt,
                self.config.max_delivery_attempts,
                error,
            )
        else:
            status = DEAD_LETTERED
            available_at = now
            logger.error(
                "Delivery %s of %s event %s dead-lettered after %s attempt(s): %s",
                delivery_id,
                envelope.detail_type,
                envelope.id,
                envelope.attempt,
                error,
                exc_info=exc,
            )

        with self.session_factory() as db:
            db.execute(
                update(BusDelivery)
                .where(BusDelivery.id == delivery_id)
                .values(status=status, last_error=error, available_at=available_at, updated_at=now)
            )
            db.commit()
        return status


def list_dead_letters(db: Session, limit: int = 100) -> list[dict[str, Any]]:
    rows = db.execute(
        select(BusDelivery, BusEvent)
        .join(BusEvent, BusEvent.id == BusDelivery.event_id)
        .where(BusDelivery.status == DEAD_LETTERED)
        .order_by(BusDelivery.updated_at.desc())
        .limit(limit)
    ).all()
    return [
        {
            "delivery_id": delivery.id,
            "event_id": event.id,
            "subscription": delivery.subscription,
            "source": event.source,
            "detail_type": event.detail_type,
            "detail": event.detail,
            "attempts": delivery.attempts,
            "last_error": delivery.last_error,
        }
        for delivery, event in rows
    ]


def redrive_dead_letter(db: Session, delivery_id: int) -> bool:
    """Put a dead-lettered delivery back in the queue with a fresh attempt budget."""
    result = db.execute(
        update(BusDelivery)
        .where(BusDelivery.id == delivery_id, BusDelivery.status == DEAD_LETTERED)
        .values(status=PENDING, attempts=0, available_at=utcnow(), updated_at=utcnow())
    )
    db.commit()
    if result.rowcount != 1:
        return False
    logger.info("Delivery %s re-driven from the dead-letter queue", delivery_id)
    return True

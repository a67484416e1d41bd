"""Key-addressed entity store with conditional, all-or-nothing multi-writes.

Every predicate is evaluated by the database inside the write statement
itself (``UPDATE ... WHERE key = :key AND <predicate>`` checked by rowcount,
``INSERT`` guarded by the primary key), so concurrent handlers racing on the
same order are serialised by the database and never by in-process locks.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Table, and_, insert, select, update
from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from market.exceptions import ConditionFailed, IntegrityViolation, SagaError, StoreUnavailable, ValidationError
from market.models import Base

logger = logging.getLogger(__name__)


class Condition:
    def clause(self, table: Table):
        raise NotImplementedError


@dataclass(frozen=True)
class ItemExists(Condition):
    def clause(self, table: Table):
        return None


@dataclass(frozen=True)
class ItemNotExists(Condition):
    def clause(self, table: Table):
        raise ValueError("ItemNotExists only applies to Put")


@dataclass(frozen=True)
class AttributeEquals(Condition):
    name: str
    value: Any

    def clause(self, table: Table):
        return table.c[self.name] == self.value


@dataclass(frozen=True)
class AttributeNotEquals(Condition):
    name: str
    value: Any

    def clause(self, table: Table):
        return table.c[self.name] != self.value


@dataclass(frozen=True)
class AttributeIn(Condition):
    name: str
    values: tuple

    def clause(self, table: Table):
        return table.c[self.name].in_(list(self.values))


class All(Condition):
    def __init__(self, *conditions: Condition):
        self.conditions = conditions

    def clause(self, table: Table):
        clauses = [c.clause(table) for c in self.conditions]
        clauses = [c for c in clauses if c is not None]
        if not clauses:
            return None
        return and_(*clauses)

    def __repr__(self) -> str:
        return f"All{self.conditions!r}"


@dataclass(frozen=True)
class Put:
    """Write a whole item. Without a condition an existing item is replaced."""

    table: str
    item: dict
    condition: Condition | None = None


@dataclass(frozen=True)
class Update:
    """Set attributes on an existing item. Updates never create items."""

    table: str
    key: Any
    attributes: dict = field(default_factory=dict)
    condition: Condition | None = None


class EntityStore:
    def __init__(self, db: Session):
        self.db = db

    def _table(self, name: str) -> Table:
        try:
            return Base.metadata.tables[name]
        except KeyError:
            raise ValueError(f"Unknown table: {name}") from None

    @staticmethod
    def _key_column(table: Table):
        (column,) = table.primary_key.columns
        return column

    def get(self, table: str, key: Any) -> dict | None:
        tbl = self._table(table)
        try:
            row = self.db.execute(select(tbl).where(self._key_column(tbl) == key)).mappings().first()
            # Release the read snapshot so the next write sees committed state.
            self.db.commit()
        except (OperationalError, DBAPIError) as exc:
            self.db.rollback()
            raise StoreUnavailable(f"Store read failed for {table}: {exc}") from exc
        return dict(row) if row is not None else None

    def transact_write(self, items: list[Put | Update]) -> None:
        """Apply every item or none of them.

        Raises ``ConditionFailed`` naming the first item whose predicate did
        not hold, ``ValidationError`` for values the columns cannot hold,
        ``IntegrityViolation`` for any other constraint violation, or
        ``StoreUnavailable`` for transient database failures.
        """
        if not items:
            raise ValueError("transact_write requires at least one item")
        index, item = 0, items[0]
        try:
            for index, item in enumerate(items):
                if isinstance(item, Put):
                    self._apply_put(index, item)
                else:
                    self._apply_update(index, item)
            self.db.commit()
        except ConditionFailed as exc:
            self.db.rollback()
            logger.debug("Transaction cancelled at item %s: %s", exc.index, exc.message)
            raise
        except IntegrityError as exc:
            self.db.rollback()
            raise self._integrity_failure(index, item, exc) from exc
        except DataError as exc:
            self.db.rollback()
            raise ValidationError(f"Value out of range for {item.table}: {exc.orig}") from exc
        except OverflowError as exc:
            self.db.rollback()
            raise ValidationError(f"Value out of range for {item.table}: {exc}") from exc
        except (OperationalError, DBAPIError) as exc:
            self.db.rollback()
            raise StoreUnavailable(f"Store write failed: {exc}") from exc
        except ValueError:
            self.db.rollback()
            raise

    def _apply_put(self, index: int, put: Put) -> None:
        tbl = self._table(put.table)
        key_column = self._key_column(tbl)
        key = put.item.get(key_column.name)
        if key is None:
            raise ValueError(f"Put into {put.table} is missing key attribute {key_column.name}")

        if isinstance(put.condition, ItemNotExists):
            self.db.execute(insert(tbl).values(**put.item))
            return

        if put.condition is not None:
            raise ValueError("Put supports only the ItemNotExists condition")

        result = self.db.execute(update(tbl).where(key_column == key).values(**put.item))
        if result.rowcount == 0:
            self.db.execute(insert(tbl).values(**put.item))

    def _integrity_failure(self, index: int, item: Put | Update, exc: IntegrityError) -> SagaError:
        """Runs after rollback: only an existing key on an ItemNotExists put is a failed condition."""
        if isinstance(item, Put) and isinstance(item.condition, ItemNotExists):
            key = item.item.get(self._key_column(self._table(item.table)).name)
            if self.get(item.table, key) is not None:
                return ConditionFailed(
                    f"{item.table} item {key} already exists", index=index, table=item.table, key=key
                )
        logger.error("Write to %s rejected by a constraint: %s", item.table, exc.orig)
        return IntegrityViolation(f"Write to {item.table} violates a constraint: {exc.orig}")

    def _apply_update(self, index: int, upd: Update) -> None:
        tbl = self._table(upd.table)
        key_column = self._key_column(tbl)
        statement = update(tbl).where(key_column == upd.key)
        if upd.condition is not None:
            clause = upd.condition.clause(tbl)
            if clause is not None:
                statement = statement.where(clause)

        result = self.db.execute(statement.values(**upd.attributes))
        if result.rowcount != 1:
            raise ConditionFailed(
                f"Condition failed for {upd.table} item {upd.key}: {upd.condition!r}",
                index=index,
                table=upd.table,
                key=upd.key,
            )

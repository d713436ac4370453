"""
Persistence boundary for transfer tokens and their permissions
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, Mapping, Optional, Sequence

from .lifespan import utc_now

logger = logging.getLogger(__name__)

TOKENS = "transfer_tokens"
PERMISSIONS = "transfer_token_permissions"

Row = dict[str, Any]
Where = Mapping[str, Any]
OrderBy = Mapping[str, str]


class EntityRepository(ABC):
    """
    CRUD interface for a single entity.

    Every method takes an explicit where filter (field equality), an
    optional select list of columns and an optional populate list of
    relations to attach.
    """

    @abstractmethod
    def find_many(
        self,
        where: Optional[Where] = None,
        select: Optional[Sequence[str]] = None,
        populate: Optional[Sequence[str]] = None,
        order_by: Optional[OrderBy] = None
    ) -> list[Row]:
        """Return all rows matching where, sorted by order_by"""
        pass

    @abstractmethod
    def find_one(
        self,
        where: Where,
        select: Optional[Sequence[str]] = None,
        populate: Optional[Sequence[str]] = None
    ) -> Optional[Row]:
        """Return the first row matching where, or None"""
        pass

    @abstractmethod
    def create(
        self,
        data: Mapping[str, Any],
        select: Optional[Sequence[str]] = None,
        populate: Optional[Sequence[str]] = None
    ) -> Row:
        """Insert a row and return it with its assigned id"""
        pass

    @abstractmethod
    def update(
        self,
        where: Where,
        data: Mapping[str, Any],
        select: Optional[Sequence[str]] = None,
        populate: Optional[Sequence[str]] = None
    ) -> Optional[Row]:
        """Update the first row matching where; None when nothing matched"""
        pass

    @abstractmethod
    def delete(
        self,
        where: Where,
        select: Optional[Sequence[str]] = None,
        populate: Optional[Sequence[str]] = None
    ) -> Optional[Row]:
        """Delete the first row matching where and return its snapshot"""
        pass


class TransferTokenStore(ABC):
    """
    Store adapter holding the token and permission repositories.
    """

    @property
    @abstractmethod
    def tokens(self) -> EntityRepository:
        pass

    @property
    @abstractmethod
    def permissions(self) -> EntityRepository:
        pass

    @abstractmethod
    def transaction(self):
        """
        Context manager making every write inside it atomic.

        If the block raises, all writes made inside it are discarded and
        the exception propagates.
        """
        pass

    @abstractmethod
    def load_relation(self, entity: str, instance: Row | int, relation: str) -> list[Row]:
        """Fetch the rows of a relation for one instance of entity"""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        pass


def _matches(row: Row, where: Optional[Where]) -> bool:
    if not where:
        return True
    return all(key in row and row[key] == value for key, value in where.items())


def _sort_key(field: str):
    # None sorts last regardless of direction of the remaining values
    return lambda row: (row.get(field) is None, row.get(field))


class _MemoryTable(EntityRepository):
    """Dict-backed table sharing the lock of its store"""

    def __init__(self, store: "InMemoryTransferTokenStore", name: str):
        self._store = store
        self.name = name
        self.rows: dict[int, Row] = {}
        self.next_id = 1

    def _present(
        self,
        row: Row,
        select: Optional[Sequence[str]],
        populate: Optional[Sequence[str]]
    ) -> Row:
        if select:
            result = {key: row[key] for key in select if key in row}
        else:
            result = dict(row)
        for relation in populate or ():
            result[relation] = self._store.load_relation(self.name, row, relation)
        return result

    def _first(self, where: Optional[Where]) -> Optional[Row]:
        for row in self.rows.values():
            if _matches(row, where):
                return row
        return None

    def find_many(self, where=None, select=None, populate=None, order_by=None):
        with self._store.lock:
            rows = [row for row in self.rows.values() if _matches(row, where)]
            for field, direction in reversed(list((order_by or {}).items())):
                rows.sort(key=_sort_key(field), reverse=direction.lower() == "desc")
            return [self._present(row, select, populate) for row in rows]

    def find_one(self, where, select=None, populate=None):
        with self._store.lock:
            row = self._first(where)
            if row is None:
                return None
            return self._present(row, select, populate)

    def create(self, data, select=None, populate=None):
        with self._store.lock:
            now = self._store.now()
            row = {"created_at": now, "updated_at": now, **data, "id": self.next_id}
            self.rows[row["id"]] = row
            self.next_id += 1
            logger.debug(f"Created {self.name} row {row['id']}")
            return self._present(row, select, populate)

    def update(self, where, data, select=None, populate=None):
        with self._store.lock:
            row = self._first(where)
            if row is None:
                return None
            row.update({key: value for key, value in data.items() if key != "id"})
            row["updated_at"] = self._store.now()
            logger.debug(f"Updated {self.name} row {row['id']}")
            return self._present(row, select, populate)

    def delete(self, where, select=None, populate=None):
        with self._store.lock:
            row = self._first(where)
            if row is None:
                return None
            snapshot = self._present(row, select, populate)
            del self.rows[row["id"]]
            self._store.cascade(self.name, row)
            logger.debug(f"Deleted {self.name} row {row['id']}")
            return snapshot


class InMemoryTransferTokenStore(TransferTokenStore):
    """
    Thread-safe in-memory store for transfer tokens and permissions.

    Transactions hold the store lock for their whole duration and restore
    a snapshot of both tables when the block raises.
    """

    # entity -> relation -> (target entity, foreign key on target)
    RELATIONS = {
        TOKENS: {"permissions": (PERMISSIONS, "token")},
    }

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.lock = threading.RLock()
        self._clock = clock
        self._tables = {
            TOKENS: _MemoryTable(self, TOKENS),
            PERMISSIONS: _MemoryTable(self, PERMISSIONS),
        }

    @property
    def tokens(self) -> EntityRepository:
        return self._tables[TOKENS]

    @property
    def permissions(self) -> EntityRepository:
        return self._tables[PERMISSIONS]

    def now(self) -> datetime:
        return self._clock()

    @contextmanager
    def transaction(self) -> Iterator["InMemoryTransferTokenStore"]:
        with self.lock:
            snapshot = {
                name: ({row_id: dict(row) for row_id, row in table.rows.items()}, table.next_id)
                for name, table in self._tables.items()
            }
            try:
                yield self
            except BaseException:
                for name, (rows, next_id) in snapshot.items():
                    self._tables[name].rows = rows
                    self._tables[name].next_id = next_id
                logger.warning("Transaction rolled back")
                raise

    def load_relation(self, entity: str, instance: Row | int, relation: str) -> list[Row]:
        try:
            target, foreign_key = self.RELATIONS[entity][relation]
        except KeyError:
            raise ValueError(f"Unknown relation {entity}.{relation}")

        instance_id = instance["id"] if isinstance(instance, Mapping) else instance
        with self.lock:
            rows = self._tables[target].rows.values()
            return [dict(row) for row in rows if row.get(foreign_key) == instance_id]

    def cascade(self, entity: str, row: Row) -> None:
        """Delete rows owned by a deleted instance"""
        for target, foreign_key in self.RELATIONS.get(entity, {}).values():
            table = self._tables[target]
            owned = [row_id for row_id, child in table.rows.items() if child.get(foreign_key) == row["id"]]
            for row_id in owned:
                del table.rows[row_id]
            if owned:
                logger.debug(f"Cascaded delete of {len(owned)} {target} rows")

    def clear(self) -> None:
        """Remove all rows from every table"""
        with self.lock:
            for table in self._tables.values():
                table.rows.clear()
                table.next_id = 1
            logger.info("Cleared transfer token store")

    def health_check(self) -> bool:
        """In-memory store is always reachable"""
        return True

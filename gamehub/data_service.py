"""Generic record-oriented access to the GameHub tables.

Every service reads and writes through :class:`DataService` instead of
touching ORM models directly. Records go in and come out as plain dicts of
column values.

Filters map a column to a value (equality) or to an ``(op, value)`` tuple::

    {"post_id": 3, "parent_id": ("is_null", True), "member_count": ("gte", 1)}

Orders are lists of ``(column, ASCENDING | DESCENDING)`` pairs.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gamehub.errors import NotFoundError, PersistenceError, ValidationError
from gamehub.models import Comment, Group, GroupMember, Post, Profile, User, Vote

logger = logging.getLogger(__name__)

ASCENDING = 1
DESCENDING = -1

TABLES = {
    "users": User,
    "profiles": Profile,
    "groups": Group,
    "group_members": GroupMember,
    "posts": Post,
    "comments": Comment,
    "votes": Vote,
}


def _condition(column, spec):
    if not isinstance(spec, tuple):
        return column == spec
    op, value = spec
    if op == "eq":
        return column == value
    if op == "ne":
        return column != value
    if op == "gt":
        return column > value
    if op == "gte":
        return column >= value
    if op == "lt":
        return column < value
    if op == "lte":
        return column <= value
    if op == "in":
        return column.in_(list(value))
    if op == "ilike":
        return column.ilike(value)
    if op == "is_null":
        return column.is_(None) if value else column.isnot(None)
    raise ValidationError(f"Unsupported filter operator: {op}")


class DataService:
    def __init__(self, db: Session):
        self.db = db
        self._in_transaction = False

    # ---------- helpers ----------

    def _model(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise ValidationError(f"Unknown table: {table}")

    def _column(self, model, name: str):
        if name not in model.__table__.columns:
            raise ValidationError(f"Unknown column {model.__tablename__}.{name}")
        return getattr(model, name)

    def _where(self, model, filter_dict: Optional[Dict[str, Any]]):
        return [_condition(self._column(model, name), spec) for name, spec in (filter_dict or {}).items()]

    @staticmethod
    def _serialize(row) -> Dict[str, Any]:
        return {c.name: getattr(row, c.name) for c in row.__table__.columns}

    def _commit(self, operation: str, table: str):
        try:
            if self._in_transaction:
                # Held until the enclosing transaction() block ends
                self.db.flush()
            else:
                self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{operation} on {table} failed: {e}")
            raise PersistenceError(f"Could not {operation} {table}") from e

    def _run(self, operation: str, table: str, fn):
        try:
            return fn()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{operation} on {table} failed: {e}")
            raise PersistenceError(f"Could not {operation} {table}") from e

    @contextmanager
    def transaction(self):
        """Group several writes into one commit.

        Writes inside the block are flushed, not committed. Leaving the block
        normally commits them all; any exception rolls all of them back and
        propagates. Nested blocks join the outermost one.
        """
        if self._in_transaction:
            yield self
            return

        self._in_transaction = True
        try:
            yield self
        except Exception:
            self.db.rollback()
            raise
        finally:
            self._in_transaction = False
        self._commit("commit", "transaction")

    # ---------- operations ----------

    def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        model = self._model(table)
        now = datetime.now(timezone.utc)
        payload = dict(record)
        for stamp in ("created_at", "updated_at"):
            if stamp in model.__table__.columns and payload.get(stamp) is None:
                payload[stamp] = now

        row = model(**payload)
        self._run("insert", table, lambda: self.db.add(row))
        self._commit("insert", table)
        self.db.refresh(row)
        logger.debug(f"Inserted into {table}")
        return self._serialize(row)

    def update(self, table: str, id: Any, patch: Dict[str, Any]) -> Dict[str, Any]:
        model = self._model(table)
        row = self._run("update", table, lambda: self.db.get(model, id))
        if row is None:
            raise NotFoundError(f"{table} record {id} not found")
        for name, value in patch.items():
            self._column(model, name)
            setattr(row, name, value)
        self._commit("update", table)
        self.db.refresh(row)
        return self._serialize(row)

    def upsert(self, table: str, unique_key: Sequence[str], record: Dict[str, Any]) -> Dict[str, Any]:
        model = self._model(table)
        key_filter = {name: record[name] for name in unique_key}
        existing = self._run(
            "upsert",
            table,
            lambda: self.db.execute(select(model).where(*self._where(model, key_filter))).scalars().first(),
        )
        if existing is None:
            return self.insert(table, record)

        for name, value in record.items():
            setattr(existing, name, value)
        if "updated_at" in model.__table__.columns and "updated_at" not in record:
            existing.updated_at = datetime.now(timezone.utc)
        self._commit("upsert", table)
        self.db.refresh(existing)
        return self._serialize(existing)

    def delete(self, table: str, filter_dict: Dict[str, Any]) -> int:
        if not filter_dict:
            raise ValidationError(f"Refusing to delete from {table} without a filter")
        model = self._model(table)
        conditions = self._where(model, filter_dict)

        def remove():
            rows = self.db.execute(select(model).where(*conditions)).scalars().all()
            for row in rows:
                self.db.delete(row)
            return len(rows)

        removed = self._run("delete", table, remove)
        self._commit("delete", table)
        return removed

    def select(
        self,
        table: str,
        filter_dict: Optional[Dict[str, Any]] = None,
        order: Optional[List[Tuple[str, int]]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        model = self._model(table)
        query = select(model).where(*self._where(model, filter_dict))
        for name, direction in order or []:
            column = self._column(model, name)
            query = query.order_by(column.desc() if direction == DESCENDING else column.asc())
        if limit is not None:
            query = query.limit(limit)
        rows = self._run("select", table, lambda: self.db.execute(query).scalars().all())
        return [self._serialize(row) for row in rows]

    def select_one(self, table: str, filter_dict: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = self.select(table, filter_dict, limit=1)
        return rows[0] if rows else None

    def count(self, table: str, filter_dict: Optional[Dict[str, Any]] = None) -> int:
        model = self._model(table)
        query = select(func.count()).select_from(model).where(*self._where(model, filter_dict))
        return self._run("count", table, lambda: self.db.execute(query).scalar_one())

from __future__ import annotations

from itertools import chain
from typing import Any, Callable, Dict, List

from blinker import Namespace
from flask import current_app
from sqlalchemy import event, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from extensions import db
from models import FeeReceipt, FeeReminder, SchoolClass, Student

COLLECTIONS = {
    "students": Student,
    "classes": SchoolClass,
    "fee_receipts": FeeReceipt,
    "fee_reminders": FeeReminder,
}

# Database-side helpers a deployment may or may not have installed
RPC_FUNCTIONS = {
    "get_overdue_payments",
    "get_fee_structure_analytics",
    "generate_reminder_message",
    "schedule_next_reminder",
}

_signals = Namespace()
records_changed = _signals.signal("records-changed")


class StoreUnavailable(Exception):
    """The record store could not be reached or refused the operation."""


class RecordNotFound(LookupError):
    """A record the caller asked for does not exist."""


class FeatureUnavailable(Exception):
    """An optional database function is not installed in this deployment."""


class RecordStore:
    """CRUD, filtering, optional RPC and change subscription over the four collections."""

    def model(self, collection: str):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}")

    # --------------------------
    # Reads
    # --------------------------
    def all(self, collection: str, *criteria, order_by=None, **filters) -> List[Any]:
        model = self.model(collection)
        try:
            query = model.query.filter_by(**filters)
            if criteria:
                query = query.filter(*criteria)
            if order_by is not None:
                query = query.order_by(order_by)
            return query.all()
        except SQLAlchemyError as e:
            self._fail(f"Failed to read {collection}", e)

    def get(self, collection: str, record_id: Any):
        model = self.model(collection)
        try:
            return db.session.get(model, record_id)
        except SQLAlchemyError as e:
            self._fail(f"Failed to load {collection} #{record_id}", e)

    def first(self, collection: str, *criteria, order_by=None, **filters):
        model = self.model(collection)
        try:
            query = model.query.filter_by(**filters)
            if criteria:
                query = query.filter(*criteria)
            if order_by is not None:
                query = query.order_by(order_by)
            return query.first()
        except SQLAlchemyError as e:
            self._fail(f"Failed to read {collection}", e)

    def snapshot(self) -> Dict[str, List[Any]]:
        """Full copy of the collections the analytics work from."""
        return {
            "students": self.all("students"),
            "receipts": self.all("fee_receipts"),
            "classes": self.all("classes"),
        }

    # --------------------------
    # Writes
    # --------------------------
    def insert(self, collection: str, **values):
        return self.add(self.model(collection)(**values))

    def add(self, obj):
        db.session.add(obj)
        self.commit(f"insert {obj!r}")
        return obj

    def update(self, obj, **values):
        for key, value in values.items():
            setattr(obj, key, value)
        self.commit(f"update {obj!r}")
        return obj

    def delete(self, obj) -> None:
        db.session.delete(obj)
        self.commit(f"delete {obj!r}")

    def commit(self, what: str = "commit") -> None:
        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            current_app.logger.warning("Integrity error on %s: %s", what, e.orig)
            raise ValueError(f"Conflicting or invalid data ({what})") from e
        except SQLAlchemyError as e:
            self._fail(f"Failed to {what}", e)

    # --------------------------
    # Optional database functions
    # --------------------------
    def rpc(self, name: str, **params) -> List[Dict[str, Any]]:
        if name not in RPC_FUNCTIONS:
            raise ValueError(f"Unknown database function: {name}")
        args = ", ".join(f":{key}" for key in params)
        if db.engine.dialect.name in ("mysql", "mariadb"):
            sql = f"CALL {name}({args})"
        else:
            sql = f"SELECT * FROM {name}({args})"
        try:
            result = db.session.execute(text(sql), params)
            rows = [dict(row._mapping) for row in result] if result.returns_rows else []
        except SQLAlchemyError as e:
            db.session.rollback()
            raise FeatureUnavailable(f"{name} is not available: {e}") from e
        return rows

    # --------------------------
    # Change notifications
    # --------------------------
    def subscribe(self, collection: str, callback: Callable[[str], None]) -> None:
        self.model(collection)
        records_changed.connect(callback, sender=collection, weak=False)

    def unsubscribe(self, collection: str, callback: Callable[[str], None]) -> None:
        records_changed.disconnect(callback, sender=collection)

    def _fail(self, message: str, error: Exception):
        try:
            db.session.rollback()
        except SQLAlchemyError:
            pass
        current_app.logger.error("%s: %s", message, error)
        raise StoreUnavailable(message) from error


store = RecordStore()


@event.listens_for(Session, "after_flush")
def _collect_changes(session, flush_context):
    changed = session.info.setdefault("changed_collections", set())
    for obj in chain(session.new, session.dirty, session.deleted):
        name = getattr(obj, "__tablename__", None)
        if name in COLLECTIONS:
            changed.add(name)


@event.listens_for(Session, "after_commit")
def _notify_changes(session):
    changed = session.info.pop("changed_collections", set())
    for name in sorted(changed):
        records_changed.send(name)


@event.listens_for(Session, "after_rollback")
def _discard_changes(session):
    session.info.pop("changed_collections", None)

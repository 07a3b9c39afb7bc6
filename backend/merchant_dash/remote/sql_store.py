# Overview: Remote store backed by the Flask-SQLAlchemy models; publishes committed changes to the hub.

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Mapping

from sqlalchemy import DateTime
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, NotFoundError, RemoteError, TransientNetworkError, ValidationError
from ..extensions import db
from ..models import MODELS_BY_TABLE
from ..time_utils import parse_iso_datetime
from .base import DELETE, INSERT, REVISION_FIELD, UPDATE, ChangeEvent, RemoteResult, RemoteStore
from .concurrency import run_with_retry


logger = logging.getLogger(__name__)


def _model_for(table: str):
    model = MODELS_BY_TABLE.get(table)
    if model is None:
        raise ValidationError(f"Unknown table: {table}")
    return model


def _columns(model) -> dict:
    return {c.key: c for c in model.__mapper__.columns}


def _query(model, filters: Mapping | None):
    query = db.session.query(model)
    columns = _columns(model)
    for name, expected in (filters or {}).items():
        column = columns.get(name)
        if column is None:
            raise ValidationError(f"{model.__tablename__} has no column {name}")
        attr = getattr(model, name)
        if isinstance(expected, (list, tuple, set, frozenset)):
            query = query.filter(attr.in_(list(expected)))
        else:
            query = query.filter(attr == expected)
    return query


def _assign(row, values: Mapping) -> None:
    """Copy known, writable columns onto a row; unknown keys (e.g. items) are ignored."""
    columns = _columns(type(row))
    for name, value in values.items():
        if name == REVISION_FIELD:
            continue
        column = columns.get(name)
        if column is None:
            continue
        if isinstance(column.type, DateTime) and isinstance(value, str):
            try:
                value = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{name} must be an ISO-8601 datetime")
        setattr(row, name, value)


class SqlRemoteStore(RemoteStore):
    """
    RemoteStore over the application database.

    All database work runs on one worker thread inside an app context, so
    the event loop never blocks and SQLite sees a single writer. Changes
    are published after commit, in commit order.
    """

    def __init__(self, app, hub=None):
        super().__init__(hub)
        self._app = app
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="remote-store")

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    # -------------------------------------------------------------------------
    # RemoteStore API
    # -------------------------------------------------------------------------

    async def fetch_all(self, table, filters=None, order_by=None, descending=False, limit=None):
        return await self._call(self._fetch_all, table, filters, order_by, descending, limit)

    async def insert(self, table, record):
        return await self._call(self._insert, table, record)

    async def upsert(self, table, record, conflict_key="id", ignore_duplicates=False):
        return await self._call(self._upsert, table, record, conflict_key, ignore_duplicates)

    async def update(self, table, filters, patch, expected_revision=None):
        return await self._call(self._update, table, filters, patch, expected_revision)

    async def delete(self, table, filters):
        return await self._call(self._delete, table, filters)

    # -------------------------------------------------------------------------
    # Worker-thread plumbing
    # -------------------------------------------------------------------------

    async def _call(self, func, *args) -> RemoteResult:
        loop = asyncio.get_running_loop()
        try:
            data, events = await loop.run_in_executor(self._executor, self._run, func, args)
        except (ValidationError, ConflictError, NotFoundError) as exc:
            return RemoteResult.failure(exc)
        except OperationalError as exc:
            logger.warning("Remote store unavailable during %s: %s", func.__name__, exc)
            return RemoteResult.failure(TransientNetworkError(str(exc.orig or exc)))
        except SQLAlchemyError as exc:
            logger.error("Remote store error during %s", func.__name__, exc_info=True)
            return RemoteResult.failure(RemoteError(str(exc)))
        for event in events:
            self.hub.publish(event)
        return RemoteResult.success(data)

    def _run(self, func, args):
        with self._app.app_context():
            try:
                return run_with_retry(lambda: func(*args))
            except Exception:
                db.session.rollback()
                raise
            finally:
                db.session.remove()

    # -------------------------------------------------------------------------
    # Operations (worker thread, inside app context)
    # -------------------------------------------------------------------------

    def _fetch_all(self, table, filters, order_by, descending, limit):
        model = _model_for(table)
        query = _query(model, filters)
        if order_by:
            if order_by not in _columns(model):
                raise ValidationError(f"{table} has no column {order_by}")
            column = getattr(model, order_by)
            query = query.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            query = query.limit(limit)
        return [row.to_dict() for row in query.all()], []

    def _insert(self, table, record):
        model = _model_for(table)
        row = model()
        _assign(row, record)
        db.session.add(row)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError(f"{table} insert rejected: {exc.orig}")
        after = row.to_dict()
        return after, [ChangeEvent(table, INSERT, after=after)]

    def _upsert(self, table, record, conflict_key, ignore_duplicates):
        model = _model_for(table)
        key_value = record.get(conflict_key)
        existing = _query(model, {conflict_key: key_value}).first() if key_value is not None else None

        if existing is None:
            row = model()
            _assign(row, record)
            db.session.add(row)
            try:
                db.session.commit()
                after = row.to_dict()
                return after, [ChangeEvent(table, INSERT, after=after)]
            except IntegrityError:
                # Lost an insert race on the conflict key; fall through to the winner's row
                db.session.rollback()
                existing = _query(model, {conflict_key: key_value}).first()
                if existing is None:
                    raise ConflictError(f"{table} upsert rejected")

        if ignore_duplicates:
            return existing.to_dict(), []

        before = existing.to_dict()
        _assign(existing, {k: v for k, v in record.items() if k != "id"})
        try:
            db.session.commit()
        except (IntegrityError, StaleDataError) as exc:
            db.session.rollback()
            raise ConflictError(f"{table} upsert rejected: {exc}")
        after = existing.to_dict()
        if after == before:
            return after, []
        return after, [ChangeEvent(table, UPDATE, after=after, before=before)]

    def _update(self, table, filters, patch, expected_revision):
        model = _model_for(table)
        rows = _query(model, filters).all()
        if not rows:
            raise NotFoundError(f"No {table} row matches {dict(filters)}")
        if expected_revision is not None and REVISION_FIELD in _columns(model):
            stale = [r for r in rows if getattr(r, REVISION_FIELD) != expected_revision]
            if stale:
                raise ConflictError(f"{table} row changed since revision {expected_revision}")

        befores = [row.to_dict() for row in rows]
        for row in rows:
            _assign(row, {k: v for k, v in patch.items() if k != "id"})
        try:
            db.session.commit()
        except StaleDataError as exc:
            db.session.rollback()
            raise ConflictError(f"{table} row changed concurrently: {exc}")

        afters = [row.to_dict() for row in rows]
        events = [
            ChangeEvent(table, UPDATE, after=after, before=before)
            for before, after in zip(befores, afters)
            if after != before
        ]
        return afters, events

    def _delete(self, table, filters):
        model = _model_for(table)
        rows = _query(model, filters).all()
        befores = [row.to_dict() for row in rows]
        for row in rows:
            db.session.delete(row)
        db.session.commit()
        return len(befores), [ChangeEvent(table, DELETE, before=before) for before in befores]

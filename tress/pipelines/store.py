"""
SQLAlchemy-backed storage for feeds, posts and push subscriptions.
"""
from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    event,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from tress.errors import ConflictError, PersistenceError
from tress.models import Feed, Post, PushSubscription

logger = logging.getLogger(__name__)

E = TypeVar("E", Feed, Post, PushSubscription)

metadata = MetaData()

feeds_table = Table(
    "feeds",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("url", String, nullable=False, unique=True),
    Column("title", String, nullable=False, default=""),
    Column("icon", String, nullable=True),
    Column("thumbnail", String, nullable=True),
)

posts_table = Table(
    "posts",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("feed_id", String(36), ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("title", String, nullable=False),
    Column("description", String, nullable=True),
    Column("content", String, nullable=True),
    Column("publish_time", String, nullable=False),
    Column("url", String, nullable=False, unique=True),
    Column("thumbnail", String, nullable=True),
)

push_subscriptions_table = Table(
    "push_subscriptions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("endpoint", String, nullable=False, unique=True),
    Column("auth_key", String, nullable=False),
    Column("p256dh_key", String, nullable=False),
)

TABLES: Dict[type, Table] = {
    Feed: feeds_table,
    Post: posts_table,
    PushSubscription: push_subscriptions_table,
}


def _table_for(model: type) -> Table:
    try:
        return TABLES[model]
    except KeyError:
        raise TypeError(f"{model.__name__} is not a stored model") from None


def _is_unique_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "unique" in message or "duplicate" in message


def build_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    if not url.drivername.startswith("sqlite"):
        return create_engine(url, future=True, pool_pre_ping=True)

    kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        kwargs["poolclass"] = StaticPool
    else:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(url, future=True, **kwargs)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


class Storage:
    def __init__(self, database_url: str = "sqlite:///tress.db", engine: Optional[Engine] = None) -> None:
        self.engine = engine or build_engine(database_url)
        metadata.create_all(self.engine)

    def insert(self, entity: E) -> E:
        table = _table_for(type(entity))
        values = dataclasses.asdict(entity)
        if values.get("id") is None:
            values.pop("id")
        try:
            with self.engine.begin() as conn:
                result = conn.execute(table.insert().values(**values))
        except IntegrityError as exc:
            if _is_unique_violation(exc):
                raise ConflictError(f"{table.name} row already exists") from exc
            raise PersistenceError(f"insert into {table.name} failed: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"insert into {table.name} failed: {exc}") from exc
        if "id" not in values:
            return dataclasses.replace(entity, id=result.inserted_primary_key[0])
        return entity

    def find_all(self, model: Type[E]) -> List[E]:
        table = _table_for(model)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(select(table)).mappings().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"reading {table.name} failed: {exc}") from exc
        return [model(**row) for row in rows]

    def find_by_id(self, model: Type[E], entity_id: Any) -> Optional[E]:
        table = _table_for(model)
        try:
            with self.engine.connect() as conn:
                row = conn.execute(select(table).where(table.c.id == entity_id)).mappings().first()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"reading {table.name} failed: {exc}") from exc
        return model(**row) if row else None

    def delete_by_id(self, model: type, entity_id: Any) -> bool:
        table = _table_for(model)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(delete(table).where(table.c.id == entity_id))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"delete from {table.name} failed: {exc}") from exc
        return result.rowcount > 0

    def update_fields(self, model: type, entity_id: Any, fields: Dict[str, Any]) -> bool:
        table = _table_for(model)
        unknown = set(fields) - set(table.c.keys())
        if unknown:
            raise ValueError(f"unknown {table.name} columns: {', '.join(sorted(unknown))}")
        try:
            with self.engine.begin() as conn:
                result = conn.execute(update(table).where(table.c.id == entity_id).values(**fields))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"update of {table.name} failed: {exc}") from exc
        return result.rowcount > 0

    def upsert_push_subscription(self, subscription: PushSubscription) -> PushSubscription:
        """Insert or replace the credentials of the subscription with the same endpoint."""
        dialect = postgresql if self.engine.dialect.name == "postgresql" else sqlite
        stmt = dialect.insert(push_subscriptions_table).values(
            endpoint=subscription.endpoint,
            auth_key=subscription.auth_key,
            p256dh_key=subscription.p256dh_key,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["endpoint"],
            set_={
                "auth_key": stmt.excluded.auth_key,
                "p256dh_key": stmt.excluded.p256dh_key,
            },
        )
        table = push_subscriptions_table
        try:
            with self.engine.begin() as conn:
                conn.execute(stmt)
                row = conn.execute(select(table).where(table.c.endpoint == subscription.endpoint)).mappings().one()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"upsert into {table.name} failed: {exc}") from exc
        return PushSubscription(**row)

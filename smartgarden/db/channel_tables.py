"""
Per-channel reading tables.

Every telemetry channel (``sensor-soil``, ``mode``, ...) gets its own table,
named after the channel. Channel names come from operators and devices, so
tables are created lazily the first time a channel is written, no migration
step involved.
"""
import logging
import re
import threading
import weakref
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, Uuid, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from smartgarden.core.errors import ValidationError
from smartgarden.db.base import Base

logger = logging.getLogger(__name__)

CHANNEL_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,47}$")


def validate_channel_name(channel: str) -> str:
    if not isinstance(channel, str) or not CHANNEL_NAME_RE.match(channel):
        raise ValidationError(f"Invalid channel name: {channel!r}")
    if channel in Base.metadata.tables:
        raise ValidationError(f"Channel name {channel!r} is reserved")
    return channel


class ChannelTableRegistry:
    """
    Explicit ``channel -> Table`` map. Lookups and creation go through one lock
    so two threads seeing a new channel at the same time build a single Table.
    """

    def __init__(self) -> None:
        self.metadata = MetaData()
        self._tables: Dict[str, Table] = {}
        # engine -> channels known to exist in that database
        self._created: "weakref.WeakKeyDictionary[Engine, set]" = weakref.WeakKeyDictionary()
        self._lock = threading.Lock()

    def _build(self, channel: str) -> Table:
        return Table(
            channel,
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("user_id", Uuid, nullable=True, index=True),
            Column("device_id", String, nullable=False, index=True),
            Column("value", String, nullable=False),
            Column("created_at", DateTime, nullable=False, default=datetime.utcnow, index=True),
        )

    def table(self, channel: str) -> Table:
        """Returns the Table handle for a channel, building it on first use."""
        validate_channel_name(channel)
        with self._lock:
            table = self._tables.get(channel)
            if table is None:
                table = self._build(channel)
                self._tables[channel] = table
            return table

    def ensure(self, engine: Engine, channel: str) -> Table:
        """
        Returns the handle and makes sure the table exists in ``engine``'s database.

        The table is created and committed on a connection of its own, so it
        is visible to every session once this returns, whatever happens to the
        caller's transaction.
        """
        table = self.table(channel)
        with self._lock:
            created = self._created.setdefault(engine, set())
            if channel in created:
                return table
            with engine.begin() as conn:
                table.create(bind=conn, checkfirst=True)
            created.add(channel)
        logger.info("Channel table ready: %s", channel)
        return table

    def forget(self, engine: Engine, channel: str) -> None:
        """Drops the 'exists' mark, e.g. after the table was dropped behind our back."""
        with self._lock:
            self._created.get(engine, set()).discard(channel)

    def known_channels(self) -> List[str]:
        with self._lock:
            return list(self._tables)


channel_tables = ChannelTableRegistry()


class FeedStore:
    """
    Persistence for telemetry readings, keyed by channel name.

    Works on the caller's Session so a reading shares the transaction of the
    device-activity update that accepted it.
    """

    def __init__(self, registry: ChannelTableRegistry = channel_tables) -> None:
        self.registry = registry

    def insert(
        self,
        db: Session,
        channel: str,
        *,
        device_id: str,
        value: str,
        user_id: Optional[UUID] = None,
        created_at: Optional[datetime] = None,
    ) -> int:
        engine = db.get_bind()
        table = self.registry.ensure(engine, channel)
        conn = db.connection()
        try:
            result = conn.execute(
                table.insert().values(
                    user_id=user_id,
                    device_id=device_id,
                    value=value,
                    created_at=created_at or datetime.utcnow(),
                )
            )
        except DBAPIError:
            self.registry.forget(engine, channel)
            raise
        return result.inserted_primary_key[0]

    def find(
        self,
        db: Session,
        channel: str,
        *,
        user_id: Optional[UUID] = None,
        device_id: Optional[str] = None,
        since: Optional[datetime] = None,
        newest_first: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        engine = db.get_bind()
        table = self.registry.ensure(engine, channel)
        conn = db.connection()
        stmt = select(table)
        if user_id is not None:
            stmt = stmt.where(table.c.user_id == user_id)
        if device_id is not None:
            stmt = stmt.where(table.c.device_id == device_id)
        if since is not None:
            stmt = stmt.where(table.c.created_at >= since)
        order = (table.c.created_at.desc(), table.c.id.desc()) if newest_first else (table.c.created_at.asc(), table.c.id.asc())
        stmt = stmt.order_by(*order)
        if limit is not None:
            stmt = stmt.limit(limit)
        return [dict(row._mapping) for row in conn.execute(stmt)]

    def latest(self, db: Session, channel: str, **filters) -> Optional[Dict[str, Any]]:
        rows = self.find(db, channel, limit=1, **filters)
        return rows[0] if rows else None


feed_store = FeedStore()

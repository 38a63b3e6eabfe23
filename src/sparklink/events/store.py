"""Event store — append-only audit log.

Every account and badge state change also appends an immutable event
{type: "verification.approved", data: {...}} in the same transaction,
so the history of a user or request can be read back later.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sparklink.db.models import Event


class EventStore:
    """Append-only event store sharing the caller's session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        stream_id: str,
        event_type: str,
        data: dict,
        metadata: Optional[dict] = None,
    ) -> Event:
        """Append an event to a stream. Flushed, not committed."""
        event = Event(
            stream_id=stream_id,
            type=event_type,
            data=data,
            meta=metadata or {},
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def read_stream(
        self,
        stream_id: str,
        after_id: int = 0,
        limit: int = 100,
    ) -> list[Event]:
        """Read events for a stream, oldest first."""
        result = await self.db.execute(
            select(Event)
            .where(Event.stream_id == stream_id, Event.id > after_id)
            .order_by(Event.id)
            .limit(limit)
        )
        return list(result.scalars().all())

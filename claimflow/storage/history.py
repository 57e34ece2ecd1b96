"""History ledger - append-only log of changes keyed by (entity type, entity id).

Entries are only ever appended; nothing here updates or deletes them.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from claimflow.config import settings
from claimflow.models import HistoryEntry
from claimflow.utils.values import to_history_value, to_metadata

logger = logging.getLogger(__name__)


async def record(
    db: AsyncSession,
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    assessment_id: str | None = None,
    field_name: str | None = None,
    old_value: Any = None,
    new_value: Any = None,
    changed_by: str | None = None,
    metadata: dict | None = None,
) -> HistoryEntry:
    """Append one history entry."""
    entry = HistoryEntry(
        entity_type=entity_type,
        entity_id=str(entity_id),
        assessment_id=assessment_id,
        action=action,
        field_name=field_name,
        old_value=to_history_value(old_value),
        new_value=to_history_value(new_value),
        changed_by=changed_by,
        metadata_json=to_metadata(metadata),
    )
    db.add(entry)
    await db.flush()
    return entry


async def record_safely(db: AsyncSession, **fields: Any) -> HistoryEntry | None:
    """Append an entry inside a savepoint; failures are logged, never raised.

    The business change the entry describes has already been written; losing
    the audit line must not undo it.
    """
    try:
        async with db.begin_nested():
            return await record(db, **fields)
    except Exception:
        logger.exception(
            "Failed to write history entry %s for %s %s",
            fields.get("action"),
            fields.get("entity_type"),
            fields.get("entity_id"),
        )
        return None


async def query_history(
    db: AsyncSession,
    entity_type: str,
    entity_id: str,
    after_id: int | None = None,
    limit: int | None = None,
) -> list[HistoryEntry]:
    """One page of entries for an entity, oldest first.

    Pass the id of the last entry seen as after_id to continue.
    """
    stmt = select(HistoryEntry).where(
        HistoryEntry.entity_type == entity_type,
        HistoryEntry.entity_id == str(entity_id),
    )
    if after_id is not None:
        stmt = stmt.where(HistoryEntry.id > after_id)
    stmt = stmt.order_by(HistoryEntry.id).limit(limit or settings.history_page_size)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def iter_history(
    db: AsyncSession,
    entity_type: str,
    entity_id: str,
    after_id: int | None = None,
    page_size: int | None = None,
) -> AsyncIterator[HistoryEntry]:
    """Lazily walk every entry for an entity, one page at a time."""
    cursor = after_id
    while True:
        page = await query_history(db, entity_type, entity_id, cursor, page_size)
        for entry in page:
            yield entry
        if len(page) < (page_size or settings.history_page_size):
            return
        cursor = page[-1].id


async def query_by_assessment(
    db: AsyncSession,
    assessment_id: str,
    after_id: int | None = None,
    limit: int | None = None,
) -> list[HistoryEntry]:
    """Entries across every entity type belonging to one assessment."""
    stmt = select(HistoryEntry).where(HistoryEntry.assessment_id == assessment_id)
    if after_id is not None:
        stmt = stmt.where(HistoryEntry.id > after_id)
    stmt = stmt.order_by(HistoryEntry.id).limit(limit or settings.history_page_size)
    result = await db.execute(stmt)
    return list(result.scalars().all())

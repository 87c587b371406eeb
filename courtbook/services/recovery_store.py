"""Recovery store for held bookings.

A granted hold is persisted so a reloaded client can resume the booking
flow while the hold lasts. Records past their ``holdUntil`` are never
returned and are removed lazily on load and by the background sweeper.
"""
import logging
from datetime import datetime
from typing import Optional

import pytz
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from courtbook.core.config import settings
from courtbook.core.database import AsyncSessionLocal
from courtbook.models.recovery import RecoveryRecord
from courtbook.schemas.booking import RecoveryPayload

logger = logging.getLogger(__name__)


def to_storage_time(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC for storage."""
    if value.tzinfo is None:
        return value
    return value.astimezone(pytz.UTC).replace(tzinfo=None)


def from_storage_time(value: datetime) -> datetime:
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value


class RecoveryStore:
    """Stores one recovery record per owner under a well-known key."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        storage_key: Optional[str] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.storage_key = storage_key or settings.RECOVERY_STORAGE_KEY

    def key_for(self, owner: str) -> str:
        return f"{self.storage_key}:{owner}"

    async def _get(self, db: AsyncSession, key: str) -> Optional[RecoveryRecord]:
        result = await db.execute(select(RecoveryRecord).where(RecoveryRecord.storage_key == key))
        return result.scalar_one_or_none()

    async def save(self, owner: str, payload: RecoveryPayload) -> None:
        """
        Save (or replace) the owner's recovery record.

        Args:
            owner: Owner identifier (user or browser session)
            payload: Recovery blob
        """
        key = self.key_for(owner)
        blob = payload.model_dump(by_alias=True, mode="json")

        async with self.session_factory() as db:
            record = await self._get(db, key)
            if record is None:
                record = RecoveryRecord(storage_key=key)
                db.add(record)

            record.booking_id = payload.booking_id
            record.payload = blob
            record.hold_until = to_storage_time(payload.hold_until)
            await db.commit()

        logger.info(f"Saved recovery record {key} (booking {payload.booking_id}, hold until {payload.hold_until})")

    async def load(self, owner: str, now: datetime) -> Optional[RecoveryPayload]:
        """
        Load the owner's recovery record if its hold has not passed.

        An expired record is deleted.

        Args:
            owner: Owner identifier
            now: Evaluation time (aware)

        Returns:
            RecoveryPayload or None
        """
        key = self.key_for(owner)

        async with self.session_factory() as db:
            record = await self._get(db, key)
            if record is None:
                return None

            if from_storage_time(record.hold_until) <= now:
                logger.info(f"Recovery record {key} expired, removing")
                await db.delete(record)
                await db.commit()
                return None

            return RecoveryPayload.model_validate(record.payload)

    async def clear(self, owner: str) -> None:
        key = self.key_for(owner)
        async with self.session_factory() as db:
            await db.execute(delete(RecoveryRecord).where(RecoveryRecord.storage_key == key))
            await db.commit()

    async def purge_expired(self, now: datetime) -> int:
        """
        Delete every record whose hold has passed.

        Returns:
            Number of records deleted
        """
        async with self.session_factory() as db:
            result = await db.execute(
                delete(RecoveryRecord).where(RecoveryRecord.hold_until <= to_storage_time(now))
            )
            await db.commit()

        purged = result.rowcount or 0
        if purged:
            logger.info(f"Purged {purged} expired recovery records")
        return purged


# Singleton instance
recovery_store = RecoveryStore()

"""Booking recovery record model."""
from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from courtbook.core.database import Base


class RecoveryRecord(Base):
    """Persisted hand-off for a held booking, kept until its hold expires."""

    __tablename__ = "booking_recoveries"

    id = Column(Integer, primary_key=True, index=True)
    storage_key = Column(String, unique=True, nullable=False, index=True)
    booking_id = Column(String, nullable=True)
    payload = Column(JSON, nullable=False)  # {bookingData, bookingId, holdUntil, timestamp}
    hold_until = Column(DateTime, nullable=False, index=True)  # naive UTC
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

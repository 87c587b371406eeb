"""Database models."""
from courtbook.models.recovery import RecoveryRecord

__all__ = ["RecoveryRecord"]

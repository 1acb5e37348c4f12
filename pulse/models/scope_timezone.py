"""Configured timezone per scope."""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import validates
from datetime import datetime, timezone
from zoneinfo import ZoneInfo
from pulse.core.database import Base


class ScopeTimezone(Base):
    """IANA timezone a town or brand resolves its slots in."""

    __tablename__ = "scope_timezones"

    scope_ref = Column(String, primary_key=True)
    timezone = Column(String, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    @validates('timezone')
    def validate_timezone(self, key, value):
        """Validate that timezone is a valid IANA timezone."""
        try:
            ZoneInfo(value)
        except Exception:
            raise ValueError(f"Invalid timezone: {value}. Must be a valid IANA timezone.")
        return value

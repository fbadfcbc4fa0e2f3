"""SentMarker ORM — database-backed record that a job's email went out.

Used when SENT_MARKER_BACKEND=database; the Redis backend keeps the same
record as a key with a TTL instead.
"""

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from gatehouse.db.base import Base, UTCDateTime, utcnow


class SentMarker(Base):
    __tablename__ = "sent_markers"

    job_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    sent_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow,
    )

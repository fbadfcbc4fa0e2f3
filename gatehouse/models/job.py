"""Job ORM — durable queue entries for background work.

Invariants:
    - id is the idempotency key (caller-chosen or uuid4 string)
    - state transitions: waiting -> active -> completed | waiting (retry) | failed
    - attempts counts deliveries started, bumped atomically on claim
    - An active job with locked_until in the past is redeliverable
    - failed jobs are retained for inspection and manual replay

Design Decisions:
    - JSON payload stored as validated by the type's schema at enqueue
    - (state, run_at) index: claim scans only due waiting jobs
"""

from datetime import datetime

from sqlalchemy import String, Text, Integer, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from gatehouse.db.base import Base, UTCDateTime, utcnow


class Job(Base):
    __tablename__ = "jobs"
    __table_args__ = (
        Index("ix_jobs_state_run_at", "state", "run_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default="waiting",
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3,
    )
    run_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow,
    )
    locked_until: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True,
    )
    locked_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow,
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True,
    )

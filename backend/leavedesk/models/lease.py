from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from leavedesk.models.base import _now_utc


class JobLease(SQLModel, table=True):
    """Exclusive, expiring claim on a scheduled job."""

    __tablename__ = "job_lease"

    job_name: str = Field(primary_key=True, max_length=100)
    holder: str = Field(max_length=255)
    acquired_at: datetime = Field(
        default_factory=_now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
    )
    expires_at: datetime = Field(sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]

from __future__ import annotations

import datetime

from sqlmodel import Field

from leavedesk.models.base import UUIDBase


class Holiday(UUIDBase, table=True):
    """A public holiday excluded from non-LOP day counts."""

    __tablename__ = "holiday"

    date: datetime.date = Field(unique=True, index=True)
    name: str = Field(max_length=255)

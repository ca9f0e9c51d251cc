# ruff: noqa: TC003
from __future__ import annotations

from datetime import date

from pydantic import BaseModel


class JobRunResponse(BaseModel):
    """Summary of a scheduled job run."""

    job: str
    target_date: date
    ran: bool
    processed: int = 0
    changed: int = 0
    skipped: int = 0
    errors: int = 0
    aborted: bool = False

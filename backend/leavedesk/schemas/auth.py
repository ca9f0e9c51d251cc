# ruff: noqa: TC003
from __future__ import annotations

import uuid

from pydantic import BaseModel

from leavedesk.models.enums import EmployeeRole

_ADMIN_ROLES = frozenset({EmployeeRole.HR, EmployeeRole.SUPER_ADMIN})


class AuthContext(BaseModel):
    """Dev auth context extracted from request headers."""

    user_id: uuid.UUID
    role: EmployeeRole = EmployeeRole.EMPLOYEE

    @property
    def is_admin(self) -> bool:
        return self.role in _ADMIN_ROLES

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from leavedesk.config import get_settings
from leavedesk.exceptions import AppError
from leavedesk.models.enums import AuditAction, AuditEntityType, EmployeeRole, LeaveType
from leavedesk.models.policy import LeavePolicyConfig
from leavedesk.schemas.policy import PolicyListResponse, PolicyResponse
from leavedesk.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    from datetime import date

    from sqlalchemy.ext.asyncio import AsyncSession

    from leavedesk.schemas.auth import AuthContext
    from leavedesk.schemas.policy import UpsertPolicyRequest

_POLICY_FIELDS = (
    "annual_credit",
    "annual_max",
    "carry_forward_limit",
    "max_leave_per_month",
    "anniversary_3_year_bonus",
    "anniversary_5_year_bonus",
    "year_opening_balance",
)


def _build_policy_response(policy: LeavePolicyConfig) -> PolicyResponse:
    return PolicyResponse(
        id=policy.id,
        role=EmployeeRole(policy.role),
        leave_type=LeaveType(policy.leave_type),
        annual_credit=policy.annual_credit,
        annual_max=policy.annual_max,
        carry_forward_limit=policy.carry_forward_limit,
        max_leave_per_month=policy.max_leave_per_month,
        anniversary_3_year_bonus=policy.anniversary_3_year_bonus,
        anniversary_5_year_bonus=policy.anniversary_5_year_bonus,
        year_opening_balance=policy.year_opening_balance,
        effective_from=policy.effective_from,
        created_by=policy.created_by,
        created_at=policy.created_at,
    )


async def get_effective_policy(
    session: AsyncSession,
    role: EmployeeRole | str,
    leave_type: LeaveType | str,
    on_date: date,
) -> LeavePolicyConfig | None:
    """Return the version with the latest effective_from on or before ``on_date``."""
    result = await session.execute(
        select(LeavePolicyConfig)
        .where(
            col(LeavePolicyConfig.role) == str(role),
            col(LeavePolicyConfig.leave_type) == str(leave_type),
            col(LeavePolicyConfig.effective_from) <= on_date,
        )
        .order_by(col(LeavePolicyConfig.effective_from).desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def resolve_monthly_cap(policy: LeavePolicyConfig | None, leave_type: LeaveType) -> Decimal | None:
    """Monthly cap for a leave type, or None when uncapped.

    Only casual and loss-of-pay leave are capped. Without a policy row the
    configured defaults apply; a cap of zero or less disables the check.
    """
    if leave_type == LeaveType.SICK:
        return None
    if policy is not None:
        cap = policy.max_leave_per_month
    else:
        settings = get_settings()
        default = (
            settings.default_monthly_cap_casual if leave_type == LeaveType.CASUAL else settings.default_monthly_cap_lop
        )
        cap = Decimal(default)
    return cap if cap > 0 else None


async def upsert_policy(
    session: AsyncSession,
    auth: AuthContext,
    payload: UpsertPolicyRequest,
) -> PolicyResponse:
    """Create a policy version, or correct the version with the same effective_from.

    Superseded versions are kept for audit; nothing is ever deleted here.
    """
    result = await session.execute(
        select(LeavePolicyConfig).where(
            col(LeavePolicyConfig.role) == payload.role.value,
            col(LeavePolicyConfig.leave_type) == payload.leave_type.value,
            col(LeavePolicyConfig.effective_from) == payload.effective_from,
        )
    )
    policy = result.scalar_one_or_none()

    if policy is None:
        policy = LeavePolicyConfig(
            role=payload.role.value,
            leave_type=payload.leave_type.value,
            effective_from=payload.effective_from,
            created_by=auth.user_id,
            **{field: getattr(payload, field) for field in _POLICY_FIELDS},
        )
        session.add(policy)
        before_dict = None
        action = AuditAction.CREATE
    else:
        before_dict = model_to_audit_dict(policy)
        for field in _POLICY_FIELDS:
            setattr(policy, field, getattr(payload, field))
        action = AuditAction.UPDATE

    await session.flush()

    await write_audit_log(
        session,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.POLICY,
        entity_id=policy.id,
        action=action,
        before_json=before_dict,
        after_json=model_to_audit_dict(policy),
    )

    await session.commit()
    await session.refresh(policy)
    return _build_policy_response(policy)


async def list_policies(
    session: AsyncSession,
    role: EmployeeRole | None = None,
    leave_type: LeaveType | None = None,
    offset: int = 0,
    limit: int = 50,
) -> PolicyListResponse:
    """List policy versions, newest effective_from first."""
    filters = []
    if role is not None:
        filters.append(col(LeavePolicyConfig.role) == role.value)
    if leave_type is not None:
        filters.append(col(LeavePolicyConfig.leave_type) == leave_type.value)

    count_result = await session.execute(select(func.count()).select_from(LeavePolicyConfig).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeavePolicyConfig)
        .where(*filters)
        .order_by(
            col(LeavePolicyConfig.role),
            col(LeavePolicyConfig.leave_type),
            col(LeavePolicyConfig.effective_from).desc(),
        )
        .offset(offset)
        .limit(limit)
    )
    return PolicyListResponse(items=[_build_policy_response(p) for p in result.scalars().all()], total=total)


async def get_effective_policy_response(
    session: AsyncSession,
    role: EmployeeRole,
    leave_type: LeaveType,
    on_date: date,
) -> PolicyResponse:
    policy = await get_effective_policy(session, role, leave_type, on_date)
    if policy is None:
        raise AppError(f"No {leave_type} policy in effect for role {role}", status_code=404)
    return _build_policy_response(policy)

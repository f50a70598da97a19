"""Restaurant administration: tenants, settings, deposits, tables and closures"""

from typing import List, Type, TypeVar
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bookflow.api.auth import require_role, require_tenant_role
from bookflow.database import Base, get_db
from bookflow.models.tenant import (
    DEFAULT_HOURS,
    DepositPolicy,
    Holiday,
    RestaurantSettings,
    RestaurantTable,
    Tenant,
)
from bookflow.models.user import User, UserRole
from bookflow.schemas.tenant import (
    DepositPolicyResponse,
    DepositPolicyUpdate,
    HolidayCreate,
    HolidayResponse,
    RestaurantSettingsResponse,
    RestaurantSettingsUpdate,
    TableCreate,
    TableResponse,
    TenantCreate,
    TenantResponse,
    TenantUpdate,
)

router = APIRouter()
logger = structlog.get_logger()

M = TypeVar("M", bound=Base)

super_admin = require_role(UserRole.SUPER_ADMIN)
tenant_reader = require_tenant_role(UserRole.STAFF_VIEWER)
tenant_admin = require_tenant_role(UserRole.RESTAURANT_ADMIN)


async def _load_tenant(db: AsyncSession, tenant_id: UUID) -> Tenant:
    tenant = await db.get(Tenant, tenant_id)
    if tenant is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return tenant


async def _per_tenant_row(db: AsyncSession, model: Type[M], tenant_id: UUID) -> M:
    """Fetch a one-per-tenant row such as the settings or the deposit policy"""
    row = await db.scalar(select(model).where(model.tenant_id == tenant_id))
    if row is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"{model.__name__} not found")
    return row


async def _patch(db: AsyncSession, row: M, changes: BaseModel) -> M:
    for field, value in changes.model_dump(exclude_unset=True).items():
        setattr(row, field, value)
    await db.commit()
    await db.refresh(row)
    return row


@router.get("", response_model=List[TenantResponse])
async def list_tenants(
    skip: int = 0,
    limit: int = 100,
    current_user: User = Depends(super_admin),
    db: AsyncSession = Depends(get_db),
):
    query = (
        select(Tenant)
        .where(Tenant.is_active.is_(True))
        .order_by(Tenant.name)
        .offset(skip)
        .limit(limit)
    )
    return (await db.execute(query)).scalars().all()


@router.post("", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    body: TenantCreate,
    current_user: User = Depends(super_admin),
    db: AsyncSession = Depends(get_db),
):
    """Onboard a restaurant with default weekly hours and deposits switched off"""
    if await db.scalar(select(Tenant.id).where(Tenant.slug == body.slug)):
        raise HTTPException(status.HTTP_409_CONFLICT, detail="Slug already in use")

    tenant = Tenant(**body.model_dump())
    db.add(tenant)
    await db.flush()

    db.add_all([
        RestaurantSettings(tenant_id=tenant.id, hours_json=dict(DEFAULT_HOURS), policies_json={}),
        DepositPolicy(tenant_id=tenant.id, enabled=False),
    ])
    await db.commit()
    await db.refresh(tenant)

    logger.info("Tenant onboarded", tenant_id=str(tenant.id), slug=tenant.slug, by=str(current_user.id))
    return tenant


@router.get("/{tenant_id}", response_model=TenantResponse)
async def get_tenant(
    tenant_id: UUID,
    current_user: User = Depends(tenant_reader),
    db: AsyncSession = Depends(get_db),
):
    return await _load_tenant(db, tenant_id)


@router.put("/{tenant_id}", response_model=TenantResponse)
async def update_tenant(
    tenant_id: UUID,
    body: TenantUpdate,
    current_user: User = Depends(tenant_admin),
    db: AsyncSession = Depends(get_db),
):
    return await _patch(db, await _load_tenant(db, tenant_id), body)


@router.delete("/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tenant(
    tenant_id: UUID,
    current_user: User = Depends(super_admin),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete: the tenant stops resolving but its bookings are kept"""
    tenant = await _load_tenant(db, tenant_id)
    tenant.is_active = False
    await db.commit()
    logger.info("Tenant deactivated", tenant_id=str(tenant_id), by=str(current_user.id))


@router.get("/{tenant_id}/settings", response_model=RestaurantSettingsResponse)
async def get_tenant_settings(
    tenant_id: UUID,
    current_user: User = Depends(tenant_reader),
    db: AsyncSession = Depends(get_db),
):
    return await _per_tenant_row(db, RestaurantSettings, tenant_id)


@router.put("/{tenant_id}/settings", response_model=RestaurantSettingsResponse)
async def update_tenant_settings(
    tenant_id: UUID,
    body: RestaurantSettingsUpdate,
    current_user: User = Depends(tenant_admin),
    db: AsyncSession = Depends(get_db),
):
    """Change hours, approval mode and the slot arithmetic used by availability"""
    row = await _per_tenant_row(db, RestaurantSettings, tenant_id)
    return await _patch(db, row, body)


@router.get("/{tenant_id}/deposit_policy", response_model=DepositPolicyResponse)
async def get_deposit_policy(
    tenant_id: UUID,
    current_user: User = Depends(tenant_reader),
    db: AsyncSession = Depends(get_db),
):
    return await _per_tenant_row(db, DepositPolicy, tenant_id)


@router.put("/{tenant_id}/deposit_policy", response_model=DepositPolicyResponse)
async def update_deposit_policy(
    tenant_id: UUID,
    body: DepositPolicyUpdate,
    current_user: User = Depends(tenant_admin),
    db: AsyncSession = Depends(get_db),
):
    """Upsert the deposit rules; tenants created before deposits existed have no row"""
    policy = await db.scalar(select(DepositPolicy).where(DepositPolicy.tenant_id == tenant_id))
    if policy is None:
        policy = DepositPolicy(tenant_id=tenant_id, enabled=False)
        db.add(policy)
    return await _patch(db, policy, body)


@router.get("/{tenant_id}/tables", response_model=List[TableResponse])
async def list_tables(
    tenant_id: UUID,
    current_user: User = Depends(tenant_reader),
    db: AsyncSession = Depends(get_db),
):
    query = (
        select(RestaurantTable)
        .where(RestaurantTable.tenant_id == tenant_id)
        .order_by(RestaurantTable.capacity, RestaurantTable.name)
    )
    return (await db.execute(query)).scalars().all()


@router.post("/{tenant_id}/tables", response_model=TableResponse, status_code=status.HTTP_201_CREATED)
async def create_table(
    tenant_id: UUID,
    body: TableCreate,
    current_user: User = Depends(tenant_admin),
    db: AsyncSession = Depends(get_db),
):
    table = RestaurantTable(tenant_id=tenant_id, **body.model_dump())
    db.add(table)
    await db.commit()
    await db.refresh(table)
    return table


@router.get("/{tenant_id}/holidays", response_model=List[HolidayResponse])
async def list_holidays(
    tenant_id: UUID,
    current_user: User = Depends(tenant_reader),
    db: AsyncSession = Depends(get_db),
):
    query = select(Holiday).where(Holiday.tenant_id == tenant_id).order_by(Holiday.holiday_date)
    return (await db.execute(query)).scalars().all()


@router.post("/{tenant_id}/holidays", response_model=HolidayResponse, status_code=status.HTTP_201_CREATED)
async def create_holiday(
    tenant_id: UUID,
    body: HolidayCreate,
    current_user: User = Depends(tenant_admin),
    db: AsyncSession = Depends(get_db),
):
    """Close the restaurant for a whole day regardless of weekly hours"""
    holiday = Holiday(tenant_id=tenant_id, **body.model_dump())
    db.add(holiday)
    await db.commit()
    await db.refresh(holiday)
    return holiday


@router.delete("/{tenant_id}/holidays/{holiday_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_holiday(
    tenant_id: UUID,
    holiday_id: UUID,
    current_user: User = Depends(tenant_admin),
    db: AsyncSession = Depends(get_db),
):
    holiday = await db.scalar(
        select(Holiday).where(Holiday.id == holiday_id, Holiday.tenant_id == tenant_id)
    )
    if holiday is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Holiday not found")

    await db.delete(holiday)
    await db.commit()

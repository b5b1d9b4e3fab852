from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.core.errors import ConflictError, NotFoundError
from mostrador.core.roles import MembershipStatus, OrganizationRole
from mostrador.crud.audit_log import record_audit
from mostrador.models.organization import Organization
from mostrador.models.organization_membership import OrganizationMembership
from mostrador.models.product import Product
from mostrador.models.user import User

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    return _SLUG_STRIP_RE.sub("-", value.strip().lower()).strip("-")


async def create_organization(
    db: AsyncSession,
    *,
    owner: User,
    name: str,
    slug: Optional[str] = None,
) -> Organization:
    """
    Creates the organization and its first approved OWNER membership in one commit.
    """
    org_slug = slugify(slug or name)
    if not org_slug:
        org_slug = uuid.uuid4().hex[:12]

    existing = (await db.execute(select(Organization).where(Organization.slug == org_slug))).scalar_one_or_none()
    if existing is not None:
        raise ConflictError("Organization slug is already taken")

    organization = Organization(name=name.strip(), slug=org_slug)
    db.add(organization)
    await db.flush()

    db.add(
        OrganizationMembership(
            organization_id=organization.id,
            user_id=owner.id,
            role=OrganizationRole.OWNER.value,
            status=MembershipStatus.APPROVED.value,
            joined_at=datetime.now(timezone.utc),
        )
    )
    record_audit(
        db,
        actor_user_id=owner.id,
        organization_id=organization.id,
        action="ORGANIZATION_CREATED",
        resource_type="organization",
        resource_id=str(organization.id),
    )

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Organization slug is already taken")
    await db.refresh(organization)
    return organization


async def list_user_organizations(db: AsyncSession, user_id: uuid.UUID) -> Sequence[Organization]:
    """
    Organizations where the user has an APPROVED membership.
    """
    stmt = (
        select(Organization)
        .join(OrganizationMembership, OrganizationMembership.organization_id == Organization.id)
        .where(OrganizationMembership.user_id == user_id)
        .where(OrganizationMembership.status == MembershipStatus.APPROVED.value)
        .where(Organization.is_active.is_(True))
        .order_by(Organization.created_at.desc())
    )
    return (await db.execute(stmt)).scalars().unique().all()


async def get_organization(db: AsyncSession, organization_id: uuid.UUID) -> Organization:
    organization = await db.get(Organization, organization_id)
    if organization is None:
        raise NotFoundError("Organization")
    return organization


async def update_organization(
    db: AsyncSession,
    organization_id: uuid.UUID,
    *,
    name: Optional[str] = None,
) -> Organization:
    organization = await get_organization(db, organization_id)
    if name is not None:
        organization.name = name.strip()
    await db.commit()
    await db.refresh(organization)
    return organization


async def delete_organization(db: AsyncSession, organization_id: uuid.UUID, *, actor_id: uuid.UUID) -> None:
    organization = await get_organization(db, organization_id)
    # Audit row outlives the organization, so it is not tied to it.
    record_audit(
        db,
        actor_user_id=actor_id,
        action="ORGANIZATION_DELETED",
        resource_type="organization",
        resource_id=str(organization.id),
        details={"name": organization.name, "slug": organization.slug},
    )
    # Explicit child deletes; not every backend enforces ON DELETE CASCADE.
    await db.execute(delete(Product).where(Product.organization_id == organization.id))
    await db.execute(delete(OrganizationMembership).where(OrganizationMembership.organization_id == organization.id))
    await db.delete(organization)
    await db.commit()

# mostrador/api/v1/products.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.api.deps.authorization import AuthorizationContext, require_permission
from mostrador.auth.evaluator import ConditionContext
from mostrador.auth.permissions import Action, Resource
from mostrador.core.errors import BadRequestError, NotFoundError
from mostrador.db.session import get_db
from mostrador.models.product import Product
from mostrador.schemas.product import ProductCreate, ProductOut, ProductUpdate

router = APIRouter(prefix="/organizations/{organization_id}/products", tags=["products"])


def _parse_product_id(raw: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(raw)
    except ValueError:
        return None


async def product_owner(db: AsyncSession, organization_id: uuid.UUID, product_id: str) -> Optional[str]:
    """Owner lookup for ownership-conditioned routes: the product's creator."""
    product_uuid = _parse_product_id(product_id)
    if product_uuid is None:
        raise NotFoundError("Product")
    stmt = select(Product.id, Product.created_by_user_id).where(
        Product.id == product_uuid,
        Product.organization_id == organization_id,
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        raise NotFoundError("Product")
    # Products without a recorded creator have no owner.
    return str(row.created_by_user_id) if row.created_by_user_id is not None else None


async def _get_product(db: AsyncSession, organization_id: uuid.UUID, product_id: uuid.UUID) -> Product:
    stmt = select(Product).where(
        Product.id == product_id,
        Product.organization_id == organization_id,
    )
    product = (await db.execute(stmt)).scalars().first()
    if not product:
        raise NotFoundError("Product")
    return product


@router.get("", response_model=List[ProductOut])
async def list_products(
    organization_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: AuthorizationContext = Depends(require_permission(Action.READ, Resource.PRODUCT)),
):
    stmt = (
        select(Product)
        .where(Product.organization_id == organization_id)
        .order_by(Product.created_at.desc())
    )
    return (await db.execute(stmt)).scalars().all()


@router.post("", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
async def create_product(
    organization_id: uuid.UUID,
    payload: ProductCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationContext = Depends(require_permission(Action.CREATE, Resource.PRODUCT)),
):
    product = Product(
        id=uuid.uuid4(),
        organization_id=organization_id,
        created_by_user_id=auth.user.id,
        name=payload.name.strip(),
        sku=payload.sku,
        price_amount=payload.price_amount,
        status="active",
    )

    db.add(product)
    await db.commit()
    await db.refresh(product)
    return product


@router.get("/{product_id}", response_model=ProductOut)
async def get_product(
    organization_id: uuid.UUID,
    product_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: AuthorizationContext = Depends(
        require_permission(Action.READ, Resource.PRODUCT, resource_id_path="product_id")
    ),
):
    return await _get_product(db, organization_id, product_id)


@router.patch("/{product_id}", response_model=ProductOut)
async def update_product(
    organization_id: uuid.UUID,
    product_id: uuid.UUID,
    payload: ProductUpdate,
    db: AsyncSession = Depends(get_db),
    _: AuthorizationContext = Depends(
        require_permission(
            Action.UPDATE,
            Resource.PRODUCT,
            resource_id_path="product_id",
            conditions=ConditionContext(require_ownership=True),
            owner_lookup=product_owner,
        )
    ),
):
    """
    Editors may only change products they created; owners may change any.
    """
    product = await _get_product(db, organization_id, product_id)

    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise BadRequestError("No fields provided to update")

    for field, value in data.items():
        setattr(product, field, value)

    await db.commit()
    await db.refresh(product)
    return product


async def _set_status(db: AsyncSession, organization_id: uuid.UUID, product_id: uuid.UUID, new_status: str) -> Product:
    product = await _get_product(db, organization_id, product_id)
    product.status = new_status
    await db.commit()
    await db.refresh(product)
    return product


@router.post("/{product_id}/archive", response_model=ProductOut)
async def archive_product(
    organization_id: uuid.UUID,
    product_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: AuthorizationContext = Depends(
        require_permission(Action.ARCHIVE, Resource.PRODUCT, resource_id_path="product_id")
    ),
):
    return await _set_status(db, organization_id, product_id, "archived")


@router.post("/{product_id}/restore", response_model=ProductOut)
async def restore_product(
    organization_id: uuid.UUID,
    product_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: AuthorizationContext = Depends(
        require_permission(Action.RESTORE, Resource.PRODUCT, resource_id_path="product_id")
    ),
):
    return await _set_status(db, organization_id, product_id, "active")


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    organization_id: uuid.UUID,
    product_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: AuthorizationContext = Depends(
        require_permission(Action.DELETE, Resource.PRODUCT, resource_id_path="product_id")
    ),
):
    product = await _get_product(db, organization_id, product_id)
    await db.delete(product)
    await db.commit()
    return None

# scrapcore/routers/admin_coupons.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from scrapcore.core.db import get_db
from scrapcore.core.deps import require_admin
from scrapcore.core.errors import ScrapCoreError
from scrapcore.schemas.coupons import AdminCouponCreateRequest, AdminCouponResponse
from scrapcore.services.coupons import create_coupon, delete_coupon, list_coupons, toggle_coupon

router = APIRouter(prefix="/admin/coupons", tags=["Admin - Coupons"])


@router.post("", response_model=AdminCouponResponse, status_code=201)
async def admin_create_coupon(
    body: AdminCouponCreateRequest,
    db: AsyncSession = Depends(get_db),
    admin=Depends(require_admin),
):
    try:
        return await create_coupon(db, **body.model_dump())
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("", response_model=list[AdminCouponResponse])
async def admin_list_coupons(
    limit: int = Query(default=200, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin=Depends(require_admin),
):
    return await list_coupons(db, limit=limit, offset=offset)


@router.patch("/{coupon_id}/toggle", response_model=AdminCouponResponse)
async def admin_toggle_coupon(
    coupon_id: int,
    db: AsyncSession = Depends(get_db),
    admin=Depends(require_admin),
):
    try:
        return await toggle_coupon(db, coupon_id)
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/{coupon_id}", status_code=204)
async def admin_delete_coupon(
    coupon_id: int,
    db: AsyncSession = Depends(get_db),
    admin=Depends(require_admin),
):
    try:
        await delete_coupon(db, coupon_id)
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

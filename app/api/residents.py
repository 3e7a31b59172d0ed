# app/api/residents.py
# -*- coding: utf-8 -*-
"""
住户 API（挂载前缀 /api/residents，全部需要 Bearer）
------------------------------------
- GET    /residents           分页 + search / ageGroup / gender / street
- GET    /residents/stats     总数、性别 / 年龄段 / 街道 / 学历分布
- GET    /residents/search    query 与过滤条件至少一项
- GET    /residents/{id}      软删除后 404
- POST   /residents           新建，resident_id 自动生成 → 201
- PUT    /residents/{id}      部分更新（缺省字段不变）；软删除后 404
- DELETE /residents/{id}      admin：软删除

注意：/stats 与 /search 必须在 /{resident_id} 之前注册。
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.api.deps.auth import require_admin
from app.api.deps.services import get_resident_service
from app.api.envelope import ok
from app.core.context import Context, get_context
from app.services.resident_filters import ResidentFilters
from app.services.residents import ResidentService

router = APIRouter(prefix="/residents", tags=["residents"])


class ResidentInput(BaseModel):
    household_number: Optional[str] = None
    resident_id: Optional[str] = None
    philsys_number: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    middle_name: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    birth_place: Optional[str] = None
    address: Optional[str] = None
    contact_number: Optional[str] = None
    civil_status: Optional[str] = None
    religion: Optional[str] = None
    educational_attainment: Optional[str] = None
    educational_attainment_other: Optional[str] = None


def resident_filters(
    search: Optional[str] = Query(default=None),
    ageGroup: Optional[str] = Query(default=None),
    gender: Optional[str] = Query(default=None),
    street: Optional[str] = Query(default=None),
) -> ResidentFilters:
    return ResidentFilters(search=search, age_group=ageGroup, gender=gender, street=street)


@router.get("")
def list_residents(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    filters: ResidentFilters = Depends(resident_filters),
    ctx: Context = Depends(get_context),
    svc: ResidentService = Depends(get_resident_service),
):
    items, pg = svc.list_residents(page, limit, filters)
    return ok(items, pagination=pg)


@router.get("/stats")
def resident_stats(ctx: Context = Depends(get_context), svc: ResidentService = Depends(get_resident_service)):
    return ok(svc.stats())


@router.get("/search")
def search_residents(
    query: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    filters: ResidentFilters = Depends(resident_filters),
    ctx: Context = Depends(get_context),
    svc: ResidentService = Depends(get_resident_service),
):
    items, pg = svc.search(query, filters, page, limit)
    return ok(items, pagination=pg)


@router.get("/{resident_id}")
def get_resident(resident_id: int, ctx: Context = Depends(get_context),
                 svc: ResidentService = Depends(get_resident_service)):
    return ok(svc.get(resident_id))


@router.post("", status_code=201)
def create_resident(body: ResidentInput, ctx: Context = Depends(get_context),
                    svc: ResidentService = Depends(get_resident_service)):
    created = svc.create(body.model_dump(exclude={"resident_id"}), actor_id=ctx.user_id)
    return ok(created, message="Resident created successfully")


@router.put("/{resident_id}")
def update_resident(resident_id: int, body: ResidentInput, ctx: Context = Depends(get_context),
                    svc: ResidentService = Depends(get_resident_service)):
    updated = svc.update(resident_id, body.model_dump(exclude_unset=True), actor_id=ctx.user_id)
    return ok(updated, message="Resident updated successfully")


@router.delete("/{resident_id}")
def delete_resident(resident_id: int, ctx: Context = Depends(require_admin),
                    svc: ResidentService = Depends(get_resident_service)):
    svc.soft_delete(resident_id, actor_id=ctx.user_id)
    return ok(message="Resident deleted successfully")

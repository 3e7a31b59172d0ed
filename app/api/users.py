# app/api/users.py
# -*- coding: utf-8 -*-
"""
操作员账户 API（挂载前缀 /api/users，全部需要 Bearer）
------------------------------------
- GET    /users          admin：分页 + role / search 过滤，admin 在前再按姓名
- GET    /users/{id}     本人或 admin
- POST   /users          admin：新建（必填 name/email/password/date_of_birth/gender/address/phone）
- PUT    /users/{id}     本人或 admin：部分更新；角色 / 启用状态仅 admin
- DELETE /users/{id}     admin：物理删除

权限细则与审计都在 app.services.users.UserService。
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.api.deps.auth import require_admin
from app.api.deps.services import get_user_service
from app.api.envelope import ok
from app.core.context import Context, get_context
from app.services.users import UserService

router = APIRouter(prefix="/users", tags=["users"])


class CreateUserInput(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None


class UpdateUserInput(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None


@router.get("")
def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
    role: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    ctx: Context = Depends(require_admin),
    svc: UserService = Depends(get_user_service),
):
    users, pg = svc.list_users(page=page, limit=limit, role=role, search=search)
    return ok({"users": users, "pagination": pg}, message="Users retrieved successfully")


@router.get("/{user_id}")
def get_user(user_id: int, ctx: Context = Depends(get_context), svc: UserService = Depends(get_user_service)):
    return ok(svc.get(ctx, user_id), message="User retrieved successfully")


@router.post("", status_code=201)
def create_user(
    body: CreateUserInput,
    ctx: Context = Depends(require_admin),
    svc: UserService = Depends(get_user_service),
):
    user = svc.create(ctx, body.model_dump())
    return ok(
        {"id": user.id, "name": user.name, "email": user.email, "role": user.role_name},
        message="User created successfully",
    )


@router.put("/{user_id}")
def update_user(
    user_id: int,
    body: UpdateUserInput,
    ctx: Context = Depends(get_context),
    svc: UserService = Depends(get_user_service),
):
    user = svc.update(ctx, user_id, body.model_dump(exclude_unset=True))
    return ok(user.public_dict(), message="User updated successfully")


@router.delete("/{user_id}")
def delete_user(user_id: int, ctx: Context = Depends(require_admin), svc: UserService = Depends(get_user_service)):
    svc.delete(ctx, user_id)
    return ok(message="User deleted successfully")

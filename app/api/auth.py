# app/api/auth.py
"""
认证路由（挂载前缀 /api/auth）：
- POST /login    邮箱 + 口令 → {token, user}
- POST /register 开放注册，默认角色 staff → 201
- GET  /verify   Bearer 令牌 → 当前用户

具体规则在 app.services.auth.AuthService；此处只做入参解析与信封包装。
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.deps.services import get_auth_service
from app.api.envelope import ok
from app.core.context import get_current_user
from app.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginInput(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RegisterInput(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None


@router.post("/login")
def login(body: LoginInput, svc: AuthService = Depends(get_auth_service)):
    token, user = svc.login(body.email, body.password)
    return ok({"token": token, "user": user.public_dict()}, message="Login successful")


@router.post("/register", status_code=201)
def register(body: RegisterInput, svc: AuthService = Depends(get_auth_service)):
    user = svc.register(**body.model_dump())
    return ok(
        {"id": user.id, "name": user.name, "email": user.email, "role": user.role_name},
        message="User registered successfully",
    )


@router.get("/verify")
def verify(user=Depends(get_current_user)):
    return ok(
        {"id": user.id, "name": user.name, "email": user.email,
         "is_active": bool(user.is_active), "role": user.role_name},
        message="Token verified",
    )

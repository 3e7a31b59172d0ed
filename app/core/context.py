# app/core/context.py
"""
统一提供请求上下文（user_id、email、name、role）。
- 兼容头部：标准 Bearer / 裸 JWT
- 令牌校验委托 AuthService.verify：签名、过期、用户仍存在且启用
- 停用用户的旧令牌在下一次请求时被拒绝（无服务端吊销列表）
"""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.infra.db import get_db
from app.infra.logger import emit
from app.services.auth import AuthService

_bearer = HTTPBearer(auto_error=False)


class Context(BaseModel):
    user_id: int
    role: str
    email: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_user(cls, user) -> "Context":
        return cls(user_id=user.id, role=user.role_name, email=user.email, name=user.name)


def extract_token(request: Request, creds: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if creds and creds.credentials:
        return creds.credentials
    # 兼容：Authorization: <JWT>
    auth = request.headers.get("authorization")
    if auth and auth.count(".") == 2 and " " not in auth.strip():
        return auth.strip()
    emit("auth_missing_header", path=str(request.url.path))
    return None


def get_current_user(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """返回仍处于启用状态的 User ORM 对象；失败抛 401 族错误。"""
    token = extract_token(request, creds)
    return AuthService(db, settings).verify(token)


def get_context(user=Depends(get_current_user)) -> Context:
    return Context.from_user(user)

# app/api/deps/services.py
"""服务对象的依赖工厂：每个请求拿到绑定本请求 Session / Settings / 客户端信息的服务实例。"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.infra.db import get_db
from app.middleware.logging import client_ip
from app.services.audit import AuditRecorder
from app.services.auth import AuthService
from app.services.residents import ResidentService
from app.services.users import UserService


def get_audit(request: Request, db: Session = Depends(get_db)) -> AuditRecorder:
    return AuditRecorder(db, ip_address=client_ip(request), user_agent=request.headers.get("user-agent"))


def get_auth_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    audit: AuditRecorder = Depends(get_audit),
) -> AuthService:
    return AuthService(db, settings, audit)


def get_user_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    audit: AuditRecorder = Depends(get_audit),
) -> UserService:
    return UserService(db, audit, max_page_size=settings.max_page_size)


def get_resident_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ResidentService:
    return ResidentService(db, max_page_size=settings.max_page_size)

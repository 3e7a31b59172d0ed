"""
模块职能：
- 操作员账户（admin / staff）的增删改查；删除为物理删除（与住户软删除不同）。
- 权限规则：列表/新建/删除仅 admin；查看/修改限本人或 admin；角色与启用状态仅 admin 可改。
- admin 的增删改以及本人修改都会写审计。

日志：
- user_create / user_update / user_delete
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.context import Context
from app.core.errors import (
    BadRequest, DuplicateEmail, Forbidden, InvalidRole, MissingFields, NotFound,
)
from app.core.models import AuditAction
from app.core.models_user import Role, User, UserRole
from app.core.security import hash_password
from app.infra.logger import emit
from app.services.audit import AuditRecorder
from app.services.resident_filters import escape_like
from app.services.residents import pagination

CREATE_REQUIRED = ("name", "email", "password", "date_of_birth", "gender", "address", "phone")
PROFILE_FIELDS = ("name", "email", "date_of_birth", "gender", "address", "phone")


class UserService:
    def __init__(self, db: Session, audit: Optional[AuditRecorder] = None, max_page_size: int = 100):
        self.db = db
        self.audit = audit or AuditRecorder(db)
        self.max_page_size = max_page_size

    # ======================================================
    # 内部工具
    # ======================================================
    def _role(self, name: str) -> Role:
        role = self.db.query(Role).filter(Role.name == name).first()
        if not role:
            raise InvalidRole()
        return role

    def _get(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def _email_taken(self, email: str, exclude_id: Optional[int] = None) -> bool:
        q = select(User.id).where(User.email == email)
        if exclude_id is not None:
            q = q.where(User.id != exclude_id)
        return self.db.execute(q).first() is not None

    @staticmethod
    def _check_self_or_admin(ctx: Context, user_id: int) -> None:
        if ctx.role != UserRole.admin.value and ctx.user_id != user_id:
            raise Forbidden()

    # ======================================================
    # 读
    # ======================================================
    def list_users(self, page: int = 1, limit: int = 20, role: Optional[str] = None,
                   search: Optional[str] = None) -> Tuple[List[Dict], Dict]:
        page = max(1, int(page or 1))
        limit = max(1, min(int(limit or 20), self.max_page_size))

        clauses = []
        if role:
            clauses.append(Role.name == role)
        if search and search.strip():
            pattern = f"%{escape_like(search.strip().lower())}%"
            clauses.append(or_(
                func.lower(User.name).like(pattern, escape="\\"),
                func.lower(User.email).like(pattern, escape="\\"),
            ))

        total = self.db.execute(
            select(func.count(User.id)).join(Role, User.role_id == Role.id).where(*clauses)
        ).scalar() or 0

        admin_first = case((Role.name == UserRole.admin.value, 0), else_=1)
        rows = self.db.execute(
            select(User)
            .join(Role, User.role_id == Role.id)
            .where(*clauses)
            .order_by(admin_first, User.name.asc(), User.id.asc())
            .limit(limit)
            .offset((page - 1) * limit)
        ).unique().scalars().all()
        return [u.public_dict() for u in rows], pagination(page, limit, total)

    def get(self, ctx: Context, user_id: int) -> Dict:
        self._check_self_or_admin(ctx, user_id)
        return self._get(user_id).public_dict()

    # ======================================================
    # 写
    # ======================================================
    def create(self, ctx: Context, fields: Dict[str, Any]) -> User:
        missing = [f for f in CREATE_REQUIRED if not fields.get(f)]
        if missing:
            raise MissingFields(missing)

        if self._email_taken(fields["email"]):
            raise DuplicateEmail("Email already exists")
        role = self._role(fields.get("role") or UserRole.staff.value)

        user = User(
            name=fields["name"],
            email=fields["email"],
            password=hash_password(fields["password"]),
            role_id=role.id,
            date_of_birth=fields["date_of_birth"],
            gender=fields["gender"],
            address=fields["address"],
            phone=fields["phone"],
            is_active=True,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateEmail("Email already exists")
        self.db.refresh(user)

        emit("user_create", user_id=user.id, role=role.name, actor=ctx.user_id)
        self.audit.record(AuditAction.USER_CREATED, ctx.user_id, f"Created user: {user.email}")
        return user

    def update(self, ctx: Context, user_id: int, fields: Dict[str, Any]) -> User:
        self._check_self_or_admin(ctx, user_id)
        user = self._get(user_id)
        is_admin = ctx.role == UserRole.admin.value

        if not is_admin and (fields.get("role") is not None or fields.get("is_active") is not None):
            raise Forbidden("Only administrators can change role or active status")

        changed = []
        email = fields.get("email")
        if email and self._email_taken(email, exclude_id=user.id):
            raise DuplicateEmail("Email already in use")

        for f in PROFILE_FIELDS:
            v = fields.get(f)
            if v is not None and v != "":
                setattr(user, f, v)
                changed.append(f)

        if fields.get("password"):
            user.password = hash_password(fields["password"])
            changed.append("password")

        if fields.get("role") is not None:
            user.role_id = self._role(fields["role"]).id
            changed.append("role")

        if fields.get("is_active") is not None:
            user.is_active = bool(fields["is_active"])
            changed.append("is_active")

        if not changed:
            raise BadRequest("No fields to update")

        user.updated_at = func.now()
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateEmail("Email already in use")
        self.db.refresh(user)

        emit("user_update", user_id=user.id, fields=changed, actor=ctx.user_id)
        self.audit.record(AuditAction.USER_UPDATED, ctx.user_id, f"Updated user: {user.id}")
        return user

    def delete(self, ctx: Context, user_id: int) -> None:
        user = self._get(user_id)
        self.db.delete(user)
        self.db.commit()
        emit("user_delete", user_id=user_id, actor=ctx.user_id)
        # 自删时审计里的 user_id 置空，避免指向已删除的行
        actor = None if ctx.user_id == user_id else ctx.user_id
        self.audit.record(AuditAction.USER_DELETED, actor, f"Deleted user: {user_id}")

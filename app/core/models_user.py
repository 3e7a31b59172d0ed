# app/core/models_user.py
""""定义 Role（admin|staff，启动时种子写入，不删除）与 User ORM 实体：
id/name/email/password/role_id/date_of_birth/gender/address/phone/is_active/created_at/updated_at。

password 存 bcrypt 哈希，任何对外序列化都不包含该字段。"""
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Index, func
from sqlalchemy.orm import relationship

from app.core.models import Base


class UserRole(str, Enum):
    admin = "admin"
    staff = "staff"


DEFAULT_ROLES = (
    (1, UserRole.admin.value, "Administrator with full system access"),
    (2, UserRole.staff.value, "Staff member with limited access"),
)


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(32), unique=True, nullable=False)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(128), nullable=False)
    email = Column(String(255), unique=True, nullable=False)   # 区分大小写，按存储值精确匹配
    password = Column(String(255), nullable=False)             # bcrypt 哈希
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    date_of_birth = Column(String(10), nullable=True)
    gender = Column(String(16), nullable=True)
    address = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())

    role = relationship("Role", lazy="joined")

    @property
    def role_name(self) -> str:
        return self.role.name if self.role else ""

    def public_dict(self) -> dict:
        """对外字段（不含 password）。"""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role_name,
            "role_id": self.role_id,
            "date_of_birth": self.date_of_birth,
            "gender": self.gender,
            "address": self.address,
            "phone": self.phone,
            "is_active": bool(self.is_active),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


Index("ix_users_role_name", User.role_id, User.name)

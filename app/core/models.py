""""
模块职能：

定义两张表：

residents：住户登记（软删除，is_active=False 即视为删除）

audit_logs：安全相关操作的只追加审计记录

主要类型/方法：

Resident：household_number 不唯一；resident_id 唯一（RES-NNN）

Resident.format_resident_id(n)：序号 → RES-NNN（至少 3 位，超过自然加宽）

Resident.next_resident_id(db)：取现有 RES-% 的最大数字后缀 + 1

AuditLog：user_id / action / description / ip_address / user_agent"""

# app/core/models.py
from enum import Enum

from sqlalchemy.orm import declarative_base, Session
from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text, Index,
    cast, func, select,
)

Base = declarative_base()

RESIDENT_ID_PREFIX = "RES-"
OTHERS_PLEASE_SPECIFY = "Others please specify"


class AuditAction(str, Enum):
    LOGIN = "LOGIN"
    REGISTER = "REGISTER"
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"


class Resident(Base):
    __tablename__ = "residents"
    id = Column(Integer, primary_key=True, autoincrement=True)
    household_number = Column(String, nullable=False, index=True)    # 同户多人，允许重复
    resident_id = Column(String, unique=True, nullable=False)        # RES-001
    philsys_number = Column(String, nullable=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False, index=True)
    middle_name = Column(String, nullable=True)
    gender = Column(String, nullable=False)
    date_of_birth = Column(Date, nullable=False)
    birth_place = Column(String, nullable=True)
    age = Column(Integer, nullable=True)                             # 冗余存储，写入时计算
    address = Column(String, nullable=False)
    contact_number = Column(String, nullable=True)
    civil_status = Column(String, nullable=True)
    religion = Column(String, nullable=True)
    educational_attainment = Column(String, nullable=True)
    educational_attainment_other = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())

    @staticmethod
    def format_resident_id(n: int) -> str:
        return f"{RESIDENT_ID_PREFIX}{n:03d}"

    @staticmethod
    def next_resident_id(db: Session) -> str:
        suffix = func.substr(Resident.resident_id, len(RESIDENT_ID_PREFIX) + 1)
        max_n = db.execute(
            select(func.max(cast(suffix, Integer)))
            .where(Resident.resident_id.like(f"{RESIDENT_ID_PREFIX}%"))
        ).scalar()
        return Resident.format_resident_id((max_n or 0) + 1)


Index("ix_residents_active_last_name", Resident.is_active, Resident.last_name)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

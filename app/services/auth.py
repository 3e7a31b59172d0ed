"""
模块职能：
- 凭据校验与令牌签发（login）、开放注册（register）、令牌校验（verify）。
- 秘钥/有效期来自构造时传入的 Settings。

日志：
- auth_login_attempt / auth_login_failed / auth_login_success
- auth_register / auth_token_expired / auth_token_invalid / auth_token_stale_user
"""
from typing import Optional, Tuple

import jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import (
    AccountInactive, DuplicateEmail, InvalidCredentials, InvalidRole, InvalidToken,
    MissingFields, MissingToken, TokenExpired, UserInactiveOrMissing,
)
from app.core.models import AuditAction
from app.core.models_user import Role, User, UserRole
from app.core.security import (
    create_access_token, decode_access_token, hash_password, verify_password,
)
from app.infra.logger import emit
from app.services.audit import AuditRecorder


def token_claims(user: User) -> dict:
    return {"id": user.id, "email": user.email, "name": user.name, "role": user.role_name}


class AuthService:
    def __init__(self, db: Session, settings: Settings, audit: Optional[AuditRecorder] = None):
        self.db = db
        self.settings = settings
        self.audit = audit or AuditRecorder(db)

    def _find_role(self, name: str) -> Optional[Role]:
        return self.db.query(Role).filter(Role.name == name).first()

    def login(self, email: Optional[str], password: Optional[str]) -> Tuple[str, User]:
        if not email or not password:
            raise MissingFields([f for f, v in (("email", email), ("password", password)) if not v])

        emit("auth_login_attempt", email=email, ip=self.audit.ip_address, ua=self.audit.user_agent)

        user = self.db.query(User).filter(User.email == email).first()
        if not user:
            emit("auth_login_failed", email=email, reason="not_found")
            raise InvalidCredentials()

        # 先判停用：与口令是否正确无关
        if not user.is_active:
            emit("auth_login_failed", email=email, reason="inactive")
            raise AccountInactive()

        if not verify_password(password, user.password):
            emit("auth_login_failed", email=email, reason="bad_password")
            raise InvalidCredentials()

        token = create_access_token(token_claims(user), self.settings)
        emit("auth_login_success", user_id=user.id, role=user.role_name)

        self.audit.record(AuditAction.LOGIN, user.id, "User logged in")
        return token, user

    def register(
        self,
        *,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        role: Optional[str] = None,
        date_of_birth: Optional[str] = None,
        gender: Optional[str] = None,
        address: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> User:
        missing = [f for f, v in (("name", name), ("email", email), ("password", password)) if not v]
        if missing:
            raise MissingFields(missing)

        if self.db.query(User.id).filter(User.email == email).first():
            raise DuplicateEmail()

        role_name = role or UserRole.staff.value
        role_row = self._find_role(role_name)
        if not role_row:
            raise InvalidRole()

        user = User(
            name=name,
            email=email,
            password=hash_password(password),
            role_id=role_row.id,
            date_of_birth=date_of_birth,
            gender=gender,
            address=address,
            phone=phone,
            is_active=True,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # 并发注册同一邮箱，唯一约束兜底
            self.db.rollback()
            raise DuplicateEmail()
        self.db.refresh(user)

        emit("auth_register", user_id=user.id, role=role_name)
        self.audit.record(AuditAction.REGISTER, user.id, f"User registered with role: {role_name}")
        return user

    def verify(self, token: Optional[str]) -> User:
        """令牌 → 仍处于启用状态的 User；停用在下一次 verify 时生效。"""
        if not token:
            raise MissingToken()
        try:
            payload = decode_access_token(token, self.settings)
        except jwt.ExpiredSignatureError:
            emit("auth_token_expired")
            raise TokenExpired()
        except jwt.PyJWTError as e:
            emit("auth_token_invalid", error=str(e))
            raise InvalidToken()

        raw_id = payload.get("id", payload.get("sub"))
        try:
            user_id = int(raw_id)
        except (TypeError, ValueError):
            emit("auth_token_invalid", error="missing_or_bad_id")
            raise InvalidToken()

        user = self.db.get(User, user_id)
        if not user or not user.is_active:
            emit("auth_token_stale_user", user_id=user_id)
            raise UserInactiveOrMissing()
        return user

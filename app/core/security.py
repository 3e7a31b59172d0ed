# app/core/security.py
"""封装口令哈希/校验（passlib[bcrypt]，cost=10）与 JWT 签发/解码。

create_access_token() 把 id/email/name/role/exp 写入负载（另带 sub=str(id)）；
秘钥与有效期来自显式传入的 Settings，不读环境变量。"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt  # PyJWT
from passlib.context import CryptContext

from app.core.config import Settings

BCRYPT_ROUNDS = 10
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        # 库里存的不是合法 bcrypt 串，按校验失败处理
        return False


def create_access_token(payload: Dict[str, Any], settings: Settings) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.token_expire_minutes)
    to_encode = dict(payload)
    if "id" in to_encode and "sub" not in to_encode:
        to_encode["sub"] = str(to_encode["id"])
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> Dict[str, Any]:
    """校验签名与 exp；失败抛 jwt.ExpiredSignatureError / jwt.PyJWTError，由调用方分类。"""
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])

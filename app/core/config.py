# app/core/config.py
"""
模块职责：进程级只读配置。
- load_settings()：进程启动时读取一次环境变量，构造 Settings；
- Settings 挂在 app.state.settings 上，由依赖注入显式传给各服务；
- 请求处理路径里不再直接读 os.getenv。
"""
from __future__ import annotations

import os
import re

from fastapi import Request
from pydantic import BaseModel

# 占位秘钥：仅用于本地开发，生产环境必须通过 JWT_SECRET 覆盖
INSECURE_DEFAULT_SECRET = "change-me-insecure-dev-secret"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_UNIT_SECONDS = {"s": 1, "m": 60, "": 60, "h": 3600, "d": 86400}


def parse_expire_minutes(raw: str | None, default: int = 1440) -> int:
    """
    解析令牌有效期："90" / "90m" → 90 分钟，"24h" → 1440，"7d" → 10080。
    无法解析时回落到 default。
    """
    if not raw:
        return default
    m = _DURATION_RE.match(raw.lower())
    if not m:
        return default
    seconds = int(m.group(1)) * _UNIT_SECONDS[m.group(2)]
    return max(1, seconds // 60)


def _get_env(k: str, default: str) -> str:
    v = os.getenv(k)
    return v if v is not None and v != "" else default


class Settings(BaseModel):
    env: str = "development"
    database_url: str = "sqlite:///./registry.db"
    jwt_secret: str = INSECURE_DEFAULT_SECRET
    jwt_algorithm: str = "HS256"
    token_expire_minutes: int = 1440
    max_page_size: int = 100

    log_level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "logs"
    log_file: str = "app.log"
    log_rotate_when: str = "midnight"
    log_backup_count: int = 7

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def uses_default_secret(self) -> bool:
        return self.jwt_secret == INSECURE_DEFAULT_SECRET


def load_settings() -> Settings:
    # 秘钥优先 JWT_SECRET，其次 SECRET_KEY（老环境兜底）
    secret = os.getenv("JWT_SECRET") or os.getenv("SECRET_KEY") or INSECURE_DEFAULT_SECRET
    settings = Settings(
        env=_get_env("APP_ENV", "development"),
        database_url=_get_env("DATABASE_URL", "sqlite:///./registry.db"),
        jwt_secret=secret,
        token_expire_minutes=parse_expire_minutes(os.getenv("JWT_EXPIRE")),
        max_page_size=int(_get_env("MAX_PAGE_SIZE", "100")),
        log_level=_get_env("LOG_LEVEL", "INFO").upper(),
        log_to_file=_get_env("LOG_TO_FILE", "true").lower() == "true",
        log_dir=_get_env("LOG_DIR", "logs"),
        log_file=_get_env("LOG_FILE", "app.log"),
        log_rotate_when=_get_env("LOG_ROTATE_WHEN", "midnight"),
        log_backup_count=int(_get_env("LOG_BACKUP_COUNT", "7")),
    )
    if settings.is_production and settings.uses_default_secret:
        raise RuntimeError("JWT_SECRET must be set when APP_ENV=production")
    return settings


def get_settings(request: Request) -> Settings:
    """FastAPI 依赖：返回 create_app() 时挂在 app.state 上的配置。"""
    return request.app.state.settings

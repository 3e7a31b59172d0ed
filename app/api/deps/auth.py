# app/api/deps/auth.py
"""
按路由的角色校验：require_roles("admin") 返回一个依赖，
ctx.role 不在集合内则 403。
"""
from fastapi import Depends

from app.core.context import Context, get_context
from app.core.errors import Forbidden
from app.core.models_user import UserRole
from app.infra.logger import emit


def require_roles(*roles: str):
    allowed = frozenset(roles)

    def _checker(ctx: Context = Depends(get_context)) -> Context:
        if ctx.role not in allowed:
            emit("auth_forbidden", user_id=ctx.user_id, role=ctx.role, required=sorted(allowed))
            raise Forbidden()
        return ctx

    return _checker


require_admin = require_roles(UserRole.admin.value)

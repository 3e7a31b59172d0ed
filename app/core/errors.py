# app/core/errors.py
"""
统一错误分类：服务层只抛 AppError 子类，由 main.py 注册的异常处理器
转换成 {"success": false, "error": "..."} 信封。

ValidationError 400 / Unauthorized 401 / Forbidden 403 / NotFound 404 / Conflict 409
"""
from typing import Iterable


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ---- 400 ----
class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class MissingFields(ValidationError):
    def __init__(self, fields: Iterable[str]):
        self.fields = list(fields)
        super().__init__(f"Missing required fields: {', '.join(self.fields)}")


class InvalidRole(ValidationError):
    default_message = "Invalid role"


class BadRequest(ValidationError):
    pass


class DuplicateResidentId(ValidationError):
    default_message = "Resident ID already exists"


# ---- 401 ----
class Unauthorized(AppError):
    status_code = 401
    default_message = "Unauthorized"


class InvalidCredentials(Unauthorized):
    default_message = "Invalid credentials"


class MissingToken(Unauthorized):
    default_message = "No token provided"


class TokenExpired(Unauthorized):
    default_message = "Token expired"


class InvalidToken(Unauthorized):
    default_message = "Invalid token"


class UserInactiveOrMissing(Unauthorized):
    default_message = "User not found or inactive"


# ---- 403 ----
class Forbidden(AppError):
    status_code = 403
    default_message = "Insufficient permissions"


class AccountInactive(Forbidden):
    default_message = "Account is inactive"


# ---- 404 / 409 ----
class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Conflict"


class DuplicateEmail(Conflict):
    default_message = "Email already registered"

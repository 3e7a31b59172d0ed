""""根据 .env 或默认值创建两名操作员：admin 与 staff（口令 bcrypt 哈希）。

可作为脚本执行，也可被测试直接导入调用（提供 run() 函数）"""
# scripts/seed_users.py
import os
import sys

# 确保脚本在控制台有输出；不影响主服务的日志设置
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from sqlalchemy.orm import Session  # noqa: E402
from app.core.config import load_settings  # noqa: E402
from app.core.models_user import Role, User, UserRole  # noqa: E402
from app.core.security import hash_password  # noqa: E402
from app.infra.db import build_engine, init_db, make_session_factory  # noqa: E402
from app.infra.logger import emit  # noqa: E402


def _get_env(k: str, default: str) -> str:
    v = os.getenv(k)
    return v if v is not None and v != "" else default


def upsert_user(db: Session, *, name: str, email: str, password: str, role: UserRole,
                gender: str, address: str, phone: str):
    role_row = db.query(Role).filter(Role.name == role.value).one()
    u = db.query(User).filter(User.email == email).first()
    if u:
        action = "updated"
        u.role_id = role_row.id
        u.is_active = True
        if password:
            u.password = hash_password(password)
    else:
        action = "created"
        u = User(name=name, email=email, password=hash_password(password), role_id=role_row.id,
                 gender=gender, address=address, phone=phone, is_active=True)
        db.add(u)

    emit("seed_user_upsert", email=email, role=role.value, action=action)
    print(f"[seed_users] {action} user: {email} ({role.value})", flush=True)


def run(database_url: str = None):
    url = database_url or load_settings().database_url
    emit("seed_begin", database_url=url)
    print("[seed_users] seeding users ...", flush=True)

    engine = build_engine(url)
    try:
        init_db(engine)  # 角色必须先存在
        with make_session_factory(engine)() as db:
            upsert_user(
                db,
                name="Admin User",
                email=_get_env("ADMIN_EMAIL", "admin@example.com"),
                password=_get_env("ADMIN_PASSWORD", "password"),
                role=UserRole.admin,
                gender="M", address="Executive Village, House 1", phone="555-0001",
            )
            upsert_user(
                db,
                name="Staff Member",
                email=_get_env("STAFF_EMAIL", "staff@example.com"),
                password=_get_env("STAFF_PASSWORD", "password"),
                role=UserRole.staff,
                gender="F", address="Executive Village, House 2", phone="555-0002",
            )
            db.commit()
    finally:
        engine.dispose()

    emit("seed_done", status="ok")
    print("[seed_users] done.", flush=True)


if __name__ == "__main__":
    try:
        run()
        sys.exit(0)
    except Exception as e:
        emit("seed_error", error=str(e))
        print(f"[seed_users] ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(1)

# app/infra/db.py
""""模块职能：

按 Settings.database_url 创建 SQLAlchemy 引擎与 Session 工厂

暴露 get_db()（FastAPI 依赖，从 app.state 取工厂）

init_db()：启动时统一建表（create-if-absent）并幂等写入 admin/staff 两个角色

主要函数：

build_engine(url)：SQLite 关闭 check_same_thread，并打开外键约束

init_db(engine)：根据 Base.metadata 建表 + seed_roles()

get_db()：每请求创建并释放一个 Session；异常时回滚"""

from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from app.core.models import Base
from app.core.models_user import Role, DEFAULT_ROLES
from app.infra.logger import emit


def build_engine(database_url: str) -> Engine:
    is_sqlite = database_url.startswith("sqlite")
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
    )
    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _enable_fk(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def seed_roles(db: Session) -> int:
    """写入默认角色（已存在则跳过），返回新增条数。"""
    existing = set(db.execute(select(Role.name)).scalars().all())
    added = 0
    for role_id, name, description in DEFAULT_ROLES:
        if name not in existing:
            db.add(Role(id=role_id, name=name, description=description))
            added += 1
    db.commit()
    return added


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)
    with make_session_factory(engine)() as db:
        added = seed_roles(db)
    emit("roles_seeded", added=added)


def get_db(request: Request) -> Generator[Session, None, None]:
    """FastAPI 依赖函数：yield 一个 Session，用后自动关闭；未提交的改动在异常时回滚。"""
    db = request.app.state.session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

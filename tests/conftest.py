# tests/conftest.py
""""每个测试一份临时 SQLite；

通过 create_app(Settings(...)) 显式注入配置（不依赖进程环境）；

TestClient 进入 with 块时触发 lifespan → 建表 + 种子角色。"""
import os

# 测试别落盘，减少噪音；需在导入 app 之前设置
os.environ["LOG_TO_FILE"] = "false"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.core.config import Settings  # noqa: E402
from app.infra.db import build_engine, init_db, make_session_factory  # noqa: E402
from app.main import create_app  # noqa: E402

TEST_SECRET = "test-secret"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'registry_test.db'}",
        jwt_secret=TEST_SECRET,
        log_to_file=False,
        log_level="WARNING",
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c


@pytest.fixture
def db(client):
    """与 client 共用同一个库的 Session，用于直接断言落库结果。"""
    session = client.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def db_only(settings):
    """不起 HTTP 的纯服务层 Session。"""
    engine = build_engine(settings.database_url)
    init_db(engine)
    session = make_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def register(client, name, email, password="secret-pw", role=None, **extra):
    body = {"name": name, "email": email, "password": password, **extra}
    if role:
        body["role"] = role
    r = client.post("/api/auth/register", json=body)
    assert r.status_code == 201, r.text
    return r.json()["data"]


def login(client, email, password="secret-pw") -> str:
    r = client.post("/api/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["data"]["token"]


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(client):
    register(client, "Alice Admin", "admin@test.local", role="admin")
    return bearer(login(client, "admin@test.local"))


@pytest.fixture
def staff_headers(client):
    register(client, "Sam Staff", "staff@test.local")
    return bearer(login(client, "staff@test.local"))

# scripts/init_db.py
"""
初始化脚本：建表（若不存在）并写入 admin / staff 两个默认角色。
安全：不会修改已有表结构与数据，可重复执行。

可作为脚本执行，也可被测试直接导入调用（提供 run() 函数）。
"""

import os
import sys

# 确保脚本在控制台有输出；不影响主服务的日志设置
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from app.core.config import load_settings  # noqa: E402
from app.infra.db import build_engine, init_db  # noqa: E402
from app.infra.logger import emit  # noqa: E402


def run(database_url: str = None):
    url = database_url or load_settings().database_url
    emit("init_db_begin", database_url=url)
    print("[init_db] creating tables if not exists ...", flush=True)
    engine = build_engine(url)
    try:
        init_db(engine)
    finally:
        engine.dispose()
    emit("init_db_done", status="ok")
    print("[init_db] done.", flush=True)


if __name__ == "__main__":
    try:
        run()
        sys.exit(0)
    except Exception as e:
        emit("init_db_error", error=str(e))
        print(f"[init_db] ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(1)

"""
模块职责：统一日志配置与结构化输出。
- configure_logging(settings): 按 Settings 设置日志等级/落盘，兼容 uvicorn。
- emit(event, **kwargs): 输出结构化日志（dict -> 一行 JSON），方便检索。
- emit_error(event, **kwargs): 同上，level=ERROR。

注意：口令与令牌一律不进日志。
"""
import logging, json, os, pathlib
from logging.handlers import TimedRotatingFileHandler
from datetime import datetime

_configured = False


def configure_logging(settings, force: bool = False):
    """settings: app.core.config.Settings；force=True 时重新装配（测试里多次建 app 用）。"""
    global _configured
    if _configured and not force:
        return

    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    ))
    root.addHandler(console)

    if settings.log_to_file:
        pathlib.Path(settings.log_dir).mkdir(parents=True, exist_ok=True)
        logfile_path = os.path.join(settings.log_dir, settings.log_file)
        fileh = TimedRotatingFileHandler(
            logfile_path, when=settings.log_rotate_when,
            backupCount=settings.log_backup_count, encoding="utf-8",
        )
        fileh.setLevel(level)
        # 文件里只写 message，本项目 message 是纯 JSON，便于检索
        fileh.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(fileh)

    root.setLevel(level)

    # 合流 uvicorn 日志
    for ln in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(ln)
        lg.handlers = []
        lg.propagate = True

    _configured = True


_app_logger = logging.getLogger("registry")


def _now_iso():
    # 本地时区 + 毫秒，示例：2025-09-18T17:30:42.123+08:00
    return datetime.now().astimezone().isoformat(timespec="milliseconds")


def emit(event: str, level: str = "INFO", **kwargs):
    """
    结构化日志：默认 INFO；每条都带时间戳 ts（本地时区）。
    用法：emit("resident_create", resident_id="RES-001", actor=3)
    """
    rec = {"ts": _now_iso(), "level": level, "event": event, **kwargs}
    lvl = getattr(logging, level.upper(), logging.INFO)
    try:
        _app_logger.log(lvl, json.dumps(rec, ensure_ascii=False, default=str))
    except Exception:
        _app_logger.log(lvl, str(rec))


def emit_error(event: str, **kwargs):
    """
    错误日志（level=ERROR），同样带 ts。
    用法：emit_error("audit_write_failed", action="LOGIN", err=str(e))
    """
    rec = {"ts": _now_iso(), "level": "ERROR", "event": event, **kwargs}
    try:
        _app_logger.error(json.dumps(rec, ensure_ascii=False, default=str))
    except Exception:
        _app_logger.error(str(rec))

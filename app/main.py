"""
应用入口：
- 加载 .env（先 .env.example 作默认，再用 .env 覆盖）
- create_app(settings)：构造配置 → 引擎/Session 工厂挂到 app.state → 中间件、异常处理、路由
- lifespan 启动阶段：配置日志 → 打印 logger_config → 建表 + 种子角色
- 提供 /api/health

运行：uvicorn app.main:app
"""
from pathlib import Path
from dotenv import load_dotenv

# 1) 先加载 .env，务必在构造 Settings 之前
ROOT = Path(__file__).resolve().parents[1]
ENV = ROOT / ".env"
ENV_EXAMPLE = ROOT / ".env.example"
if ENV_EXAMPLE.exists():
    load_dotenv(ENV_EXAMPLE, override=False)
if ENV.exists():
    load_dotenv(ENV, override=True)

# 2) 正常导入
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import auth as auth_api
from app.api import residents as residents_api
from app.api import users as users_api
from app.api.envelope import fail, ok
from app.core.config import Settings, load_settings
from app.core.errors import AppError
from app.infra.db import build_engine, init_db, make_session_factory
from app.infra.logger import configure_logging, emit, emit_error
from app.middleware.logging import RequestLoggingMiddleware


# 3) lifespan：替代 on_event（startup/shutdown）
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    configure_logging(settings, force=True)
    emit(
        "logger_config",
        to_file=settings.log_to_file, dir=settings.log_dir, file=settings.log_file,
        when=settings.log_rotate_when, backup=settings.log_backup_count,
    )
    if settings.uses_default_secret:
        emit("insecure_default_secret", level="WARNING", hint="set JWT_SECRET before deploying")
    init_db(app.state.engine)
    emit("db_init_done", database_url=settings.database_url)
    yield
    # shutdown
    app.state.engine.dispose()
    emit("app_shutdown")


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content=fail(exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        # 逐个列出出错字段（路径去掉 body/query 前缀）
        fields = []
        for err in exc.errors():
            loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
            fields.append(".".join(loc) or "body")
        fields = list(dict.fromkeys(fields))
        return JSONResponse(
            status_code=400,
            content=fail(f"Invalid fields: {', '.join(fields)}", fields=fields),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content=fail(str(exc.detail)),
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        settings: Settings = request.app.state.settings
        emit_error(
            "unhandled_exception",
            request_id=getattr(request.state, "request_id", None),
            path=str(request.url.path),
            error=repr(exc),
        )
        extra = {}
        if not settings.is_production:
            extra = {"detail": str(exc), "trace": traceback.format_exception(type(exc), exc, exc.__traceback__)}
        return JSONResponse(status_code=500, content=fail("Internal server error", **extra))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()

    # 4) 创建应用并装配（lifespan 要在这里传入）
    app = FastAPI(title="Household Registry API", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = build_engine(settings.database_url)
    app.state.session_factory = make_session_factory(app.state.engine)

    app.add_middleware(RequestLoggingMiddleware)
    register_error_handlers(app)

    @app.get("/api/health")
    def health():
        return ok(message="Registry API is running")

    # 路由
    app.include_router(auth_api.router, prefix="/api")
    app.include_router(users_api.router, prefix="/api")
    app.include_router(residents_api.router, prefix="/api")
    return app


app = create_app()

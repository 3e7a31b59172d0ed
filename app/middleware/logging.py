"""
模块职责：请求级日志中间件。
- 为每个请求生成 request_id，挂到 request.state.request_id；
- 记录 request_start 与 request_end（含客户端 IP、耗时、状态码）；
- 捕获异常并输出 request_error，随后抛出交给异常处理器。
"""
import time
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from app.infra.logger import emit


def client_ip(request: Request):
    # 反向代理场景优先取 X-Forwarded-For 的第一个地址
    fwd = request.headers.get("x-forwarded-for")
    if fwd:
        return fwd.split(",")[0].strip()
    return request.client.host if request.client else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = rid
        start = time.perf_counter()
        emit(
            "request_start",
            request_id=rid,
            method=request.method,
            path=str(request.url.path),
            ip=client_ip(request),
        )
        try:
            response: Response = await call_next(request)
        except Exception as e:
            emit(
                "request_error",
                level="ERROR",
                request_id=rid,
                method=request.method,
                path=str(request.url.path),
                error=repr(e),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise
        emit(
            "request_end",
            request_id=rid,
            method=request.method,
            path=str(request.url.path),
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        response.headers["x-request-id"] = rid
        return response

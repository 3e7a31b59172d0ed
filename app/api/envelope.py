# app/api/envelope.py
"""统一响应信封：{success, data?, error?, message?, pagination?}"""
from typing import Any, Dict, Optional


def ok(data: Any = None, message: Optional[str] = None, pagination: Optional[Dict] = None) -> Dict:
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    if pagination is not None:
        body["pagination"] = pagination
    return body


def fail(error: str, **extra) -> Dict:
    return {"success": False, "error": error, **extra}

from typing import Any, Dict, List


def ok(data: Any, warnings: List[str] | None = None) -> Dict[str, Any]:
    """Return a success envelope.

    ``warnings`` carries failures of best-effort side effects that did not
    abort the operation.
    """
    body: Dict[str, Any] = {"ok": True, "data": data}
    if warnings:
        body["warnings"] = warnings
    return body


def err(
    code: int | str,
    message: str,
    details: Dict[str, Any] | None = None,
    hint: str | None = None,
) -> Dict[str, Any]:
    """Return an error envelope."""
    from ..middlewares.request_id import request_id_ctx

    error: Dict[str, Any] = {"code": code, "message": message}
    if hint:
        error["hint"] = hint
    if details:
        error["details"] = details

    return {"ok": False, "request_id": request_id_ctx.get(None), "error": error}

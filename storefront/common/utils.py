from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union
from fastapi.responses import JSONResponse
from storefront.common.constants import request_id_ctx


def now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes for timezone-aware columns
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _envelope(state: str, data: Any, error: Any, request_id: Optional[str]) -> Dict[str, Any]:
    return {
        "status": state,
        "data": data,
        "error": error,
        "trace_id": None,
        "request_id": request_id if request_id is not None else request_id_ctx.get(),
    }


def build_success(data: Dict[str, Any], request_id: Optional[str] = None) -> Dict[str, Any]:
    return _envelope("ok", data, None, request_id)


def build_error(code: Union[str, int] = "UNKNOWN_ERROR", details: Optional[Any] = None,
                request_id: Optional[str] = None) -> Dict[str, Any]:
    return _envelope("error", None, {"code": code, "details": details}, request_id)


def success_response(data: Dict[str, Any], status_code: int = 200,
                     headers: Optional[Mapping[str, str]] = None) -> JSONResponse:
    return JSONResponse(build_success(data), status_code=status_code, headers=headers)


def error_response(code: Union[str, int], details: Optional[Any], status_code: int,
                   headers: Optional[Mapping[str, str]] = None) -> JSONResponse:
    return JSONResponse(build_error(code, details), status_code=status_code, headers=headers)

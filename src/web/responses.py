"""
Response envelope - the uniform JSON shape of every API response.

Success:
    {"success": true, "message": "...", "timestamp": "...", "data": ...}
Error:
    {"success": false, "message": "...", "timestamp": "...",
     "code": "...", "errors": [...], "request_id": "..."}
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from middleware.correlation import get_request_id


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with a Z suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class Envelope(BaseModel):
    """Uniform API response structure."""
    success: bool
    message: str
    timestamp: str = Field(default_factory=utc_timestamp)
    data: Optional[Any] = None
    errors: Optional[List[str]] = None
    code: Optional[str] = None
    request_id: Optional[str] = None

    def to_content(self) -> dict:
        return jsonable_encoder(self.model_dump(exclude_none=True))


def success_response(
    data: Any = None,
    message: str = "OK",
    status_code: int = 200,
) -> JSONResponse:
    envelope = Envelope(success=True, message=message, data=data)
    content = envelope.to_content()
    if data is None:
        content["data"] = None
    return JSONResponse(status_code=status_code, content=content)


def error_response(
    status_code: int,
    message: str,
    code: Optional[str] = None,
    errors: Optional[List[str]] = None,
    request_id: Optional[str] = None,
) -> JSONResponse:
    envelope = Envelope(
        success=False,
        message=message,
        code=code,
        errors=errors or None,
        request_id=request_id or get_request_id(),
    )
    return JSONResponse(status_code=status_code, content=envelope.to_content())

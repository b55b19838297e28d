"""
Campus API — Response Envelopes
================================

What:  The uniform JSON wrappers every API route returns.
Why:   Clients check one boolean (`success`) and then read either `data` or
       `error`. They never have to guess the shape from the status code.

Shapes:
    Success:  {"success": true,  "data": ..., "message": "..."?}
    Failure:  {"success": false, "error": {"message": "...", "code": "...", "details": ...?}}

    A failure never carries `data`; a success never carries `error`.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from campus_api.exceptions import ErrorKind


class ErrorBody(BaseModel):
    message: str = Field(description="Display-safe, human-readable message")
    code: str = Field(description="Stable machine-readable code, e.g. FORBIDDEN")
    details: Optional[Any] = Field(
        default=None,
        description="Validation issues, or diagnostics outside production",
    )

    model_config = {"frozen": True}


class ErrorEnvelope(BaseModel):
    success: Literal[False] = False
    error: ErrorBody

    model_config = {"frozen": True}

    def to_content(self) -> Dict[str, Any]:
        content = self.model_dump(mode="json")
        if content["error"]["details"] is None:
            del content["error"]["details"]
        return content


class SuccessEnvelope(BaseModel):
    success: Literal[True] = True
    data: Any = None
    message: Optional[str] = None

    model_config = {"frozen": True}

    def to_content(self) -> Dict[str, Any]:
        content = self.model_dump(mode="json")
        if content["message"] is None:
            del content["message"]
        return content


def build_error_envelope(
    kind: ErrorKind,
    message: Optional[str] = None,
    details: Any = None,
) -> ErrorEnvelope:
    return ErrorEnvelope(
        error=ErrorBody(
            message=message or kind.default_message,
            code=kind.code,
            details=details,
        )
    )


def success_response(
    data: Any = None,
    status_code: int = 200,
    message: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Build the one response a business handler returns.

    Example:
        return success_response(news, status_code=201, message="News created")
    """
    envelope = SuccessEnvelope(data=data, message=message)
    return JSONResponse(status_code=status_code, content=envelope.to_content(), headers=headers)


def error_response(
    kind: ErrorKind,
    message: Optional[str] = None,
    details: Any = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    envelope = build_error_envelope(kind, message, details)
    return JSONResponse(status_code=kind.status, content=envelope.to_content(), headers=headers)

"""
Pydantic models for the DashStream API envelopes and request descriptors.

Field names follow the wire format (camelCase) through aliases, so
``model_dump(by_alias=True)`` reproduces the envelope exactly.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


ENVELOPE_KEYS = frozenset({"success", "status", "message", "data", "meta"})


@dataclass(frozen=True)
class RequestDescriptor:
    """One API call, immutable once built

    Attributes:
        method: HTTP method
        path: Path relative to the API base URL
        body: JSON body (ignored when ``files`` is set)
        query: Query string parameters
        headers: Extra headers supplied by the caller
        files: Multipart files; switches the body to multipart/form-data
    """
    method: str
    path: str
    body: Any = None
    query: Optional[Mapping[str, Any]] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    files: Optional[Mapping[str, Any]] = None


class PaginationMeta(BaseModel):
    """Pagination block of ``meta``

    Every field is optional: endpoints omit or null out whichever they do
    not compute.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    page: Optional[int] = None
    limit: Optional[int] = None
    total: Optional[int] = None
    total_pages: Optional[int] = Field(default=None, alias="totalPages")


class ResponseMeta(BaseModel):
    """Optional ``meta`` block of a success envelope"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    pagination: Optional[PaginationMeta] = None
    # ISO string or epoch number, depending on the endpoint
    request_time: Optional[Union[str, int, float]] = Field(default=None, alias="requestTime")


class ApiResponse(BaseModel):
    """Normalized success envelope

    Top-level fields outside the envelope (e.g. a bare ``total``) are kept
    as extras.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    success: bool = True
    status: str = "success"
    message: str = ""
    data: Any = None
    meta: Optional[ResponseMeta] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ApiResponse":
        """Build a response from a decoded JSON body

        ``success`` is the canonical outcome flag. ``status == "success"``
        is only consulted when a body carries no ``success`` field. Bodies
        without an envelope are wrapped as the ``data`` of a success.
        """
        if not isinstance(payload, dict) or not ({"success", "status", "data"} & payload.keys()):
            return cls(success=True, status="success", message="Success", data=payload)

        if "success" in payload:
            success = bool(payload["success"])
        else:
            success = payload.get("status") == "success"

        extras = {k: v for k, v in payload.items() if k not in ENVELOPE_KEYS}
        meta = payload.get("meta")
        return cls(
            success=success,
            status=str(payload.get("status") or ("success" if success else "error")),
            message=str(payload.get("message") or ""),
            data=payload.get("data"),
            meta=ResponseMeta.model_validate(meta) if isinstance(meta, dict) else None,
            **extras,
        )

    @property
    def pagination(self) -> Optional[PaginationMeta]:
        return self.meta.pagination if self.meta else None


class ErrorDetail(BaseModel):
    """Machine-readable part of an error envelope"""
    code: str
    details: Any = None


class ApiError(BaseModel):
    """Normalized error envelope, produced for every failure path"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    status: str
    message: str
    status_code: int = Field(alias="statusCode")
    error: Optional[ErrorDetail] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], http_status: int) -> "ApiError":
        """Build an error from a server-supplied error body

        The backend reports its error code either as ``error.code`` or as a
        top-level ``errorCode``; both end up in ``error.code``.
        """
        error = payload.get("error")
        detail: Optional[ErrorDetail] = None
        if isinstance(error, dict) and error.get("code"):
            detail = ErrorDetail(code=str(error["code"]), details=error.get("details"))
        elif payload.get("errorCode"):
            detail = ErrorDetail(code=str(payload["errorCode"]), details=payload.get("details"))

        status_code = payload.get("statusCode")
        if not isinstance(status_code, int) or isinstance(status_code, bool):
            status_code = http_status

        return cls(
            status=str(payload.get("status") or "error"),
            message=str(payload.get("message") or "An unexpected error occurred."),
            status_code=status_code,
            error=detail,
        )

    @property
    def code(self) -> Optional[str]:
        return self.error.code if self.error else None

"""Structured errors raised by the spreadsheet connector and access layer."""
from enum import Enum
from typing import Any, Optional


class SheetsErrorCode(str, Enum):
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    UNKNOWN = "UNKNOWN"


_HTTP_STATUS = {
    SheetsErrorCode.PERMISSION_DENIED: 403,
    SheetsErrorCode.NOT_FOUND: 404,
    SheetsErrorCode.RATE_LIMITED: 429,
}

# google.rpc.Code names returned in error.status
_RPC_STATUS = {
    "PERMISSION_DENIED": SheetsErrorCode.PERMISSION_DENIED,
    "UNAUTHENTICATED": SheetsErrorCode.PERMISSION_DENIED,
    "NOT_FOUND": SheetsErrorCode.NOT_FOUND,
    "RESOURCE_EXHAUSTED": SheetsErrorCode.RATE_LIMITED,
}


class SheetsError(Exception):
    """Failure talking to the spreadsheet service."""

    def __init__(self, code: SheetsErrorCode, message: str, upstream_status: Optional[int] = None):
        self.code = code
        self.message = message
        self.upstream_status = upstream_status
        super().__init__(message)

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS.get(self.code, 500)

    @property
    def is_rate_limited(self) -> bool:
        return self.code == SheetsErrorCode.RATE_LIMITED


class TabNotFoundError(SheetsError):
    """None of the known tab naming variants exists in the spreadsheet."""

    def __init__(self, spreadsheet_id: str, tried: list[str]):
        self.spreadsheet_id = spreadsheet_id
        self.tried = tried
        super().__init__(
            SheetsErrorCode.NOT_FOUND,
            f"No matching tab found. Tried: {', '.join(tried)}",
        )


class ViolationNotFoundError(LookupError):
    def __init__(self, violation_id: str, where: str = "active violations"):
        self.violation_id = violation_id
        super().__init__(f"Violation not found in {where}: {violation_id}")


class TenantNotFoundError(LookupError):
    def __init__(self, subdomain: str):
        self.subdomain = subdomain
        super().__init__(f"Client not found: {subdomain}")


def classify_error(http_status: int, payload: Any) -> SheetsErrorCode:
    """Map a non-2xx API response to a SheetsErrorCode using structured fields only."""
    error = payload.get("error") if isinstance(payload, dict) else None
    rpc_status = error.get("status") if isinstance(error, dict) else None
    if rpc_status in _RPC_STATUS:
        return _RPC_STATUS[rpc_status]
    if http_status in (401, 403):
        return SheetsErrorCode.PERMISSION_DENIED
    if http_status == 404:
        return SheetsErrorCode.NOT_FOUND
    if http_status == 429:
        return SheetsErrorCode.RATE_LIMITED
    return SheetsErrorCode.UNKNOWN


def error_from_response(http_status: int, payload: Any) -> SheetsError:
    code = classify_error(http_status, payload)
    message = ""
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        message = payload["error"].get("message") or ""
    return SheetsError(code, message or f"Spreadsheet API returned HTTP {http_status}", http_status)

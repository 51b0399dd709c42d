"""Google Sheets connector: service-account auth plus values and rows REST calls."""
import json
import logging
from typing import Any, Optional
from urllib.parse import quote

import requests
from authlib.integrations.requests_client import AssertionSession

from sellerdash.config import settings
from sellerdash.connectors.errors import SheetsError, SheetsErrorCode, error_from_response

logger = logging.getLogger(__name__)

SHEETS_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
SCOPE = "https://www.googleapis.com/auth/spreadsheets"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"


def load_service_account_info(raw_json: str = "", path: str = "") -> dict[str, Any]:
    """Read service-account credentials from an inline JSON string or a key file."""
    if raw_json:
        try:
            return json.loads(raw_json)
        except ValueError as exc:
            raise ValueError("GOOGLE_SERVICE_ACCOUNT_KEY is not valid JSON") from exc
    if path:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    raise ValueError("GOOGLE_SERVICE_ACCOUNT_KEY environment variable is not set")


def create_assertion_session(info: dict[str, Any], scope: str = SCOPE) -> AssertionSession:
    """Build an OAuth2 JWT-bearer session for a Google service account."""
    token_url = info.get("token_uri") or DEFAULT_TOKEN_URI
    header = {"alg": "RS256"}
    if info.get("private_key_id"):
        header["kid"] = info["private_key_id"]
    return AssertionSession(
        grant_type=AssertionSession.JWT_BEARER_GRANT_TYPE,
        token_endpoint=token_url,
        issuer=info["client_email"],
        audience=token_url,
        claims={"scope": scope},
        subject=None,
        key=info["private_key"],
        header=header,
    )


def quote_tab(tab_name: str) -> str:
    """Quote a tab name for A1 notation ('It''s' style escaping)."""
    return "'" + tab_name.replace("'", "''") + "'"


def a1_range(tab_name: str, start: str, end: Optional[str] = None) -> str:
    """Build an A1 range such as 'Tab'!A:N or 'Tab'!L5."""
    if end is None:
        return f"{quote_tab(tab_name)}!{start}"
    return f"{quote_tab(tab_name)}!{start}:{end}"


class GoogleSheetsConnector:
    """Thin wrapper over the Sheets v4 REST API. Every failure surfaces as SheetsError."""

    def __init__(self, session: requests.Session, timeout: int = 30):
        self._session = session
        self._timeout = timeout

    @classmethod
    def from_settings(cls) -> "GoogleSheetsConnector":
        info = load_service_account_info(
            settings.google_service_account_key, settings.google_service_account_file
        )
        return cls(create_assertion_session(info), timeout=settings.sheets_request_timeout)

    def _request(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        try:
            r = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            raise SheetsError(SheetsErrorCode.UNKNOWN, f"Spreadsheet API request failed: {exc}") from exc
        if r.status_code >= 400:
            try:
                payload = r.json()
            except ValueError:
                payload = None
            err = error_from_response(r.status_code, payload)
            logger.warning("Sheets API %s %s -> %d (%s)", method, url, r.status_code, err.code.value)
            raise err
        if not r.content:
            return {}
        return r.json()

    def get_tabs(self, spreadsheet_id: str) -> dict[str, int]:
        """Return {tab title: sheet gid} for a spreadsheet."""
        data = self._request(
            "GET",
            f"{SHEETS_BASE}/{spreadsheet_id}",
            params={"fields": "sheets.properties(sheetId,title)"},
        )
        tabs = {}
        for sheet in data.get("sheets", []) or []:
            props = sheet.get("properties", {}) or {}
            tabs[props.get("title", "")] = int(props.get("sheetId", 0))
        return tabs

    def get_values(self, spreadsheet_id: str, range_a1: str) -> list[list[str]]:
        """Read a range as formatted strings. Trailing empty cells are omitted by the API."""
        data = self._request(
            "GET",
            f"{SHEETS_BASE}/{spreadsheet_id}/values/{quote(range_a1, safe='')}",
            params={"valueRenderOption": "FORMATTED_VALUE"},
        )
        return [[str(cell) for cell in row] for row in data.get("values", []) or []]

    def batch_update_values(self, spreadsheet_id: str, cells: dict[str, Any]) -> int:
        """Write several single-cell or row ranges in one call. Returns updated cell count."""
        body = {
            "valueInputOption": "USER_ENTERED",
            "data": [
                {"range": rng, "values": value if isinstance(value, list) else [[value]]}
                for rng, value in cells.items()
            ],
        }
        data = self._request("POST", f"{SHEETS_BASE}/{spreadsheet_id}/values:batchUpdate", json=body)
        return int(data.get("totalUpdatedCells", 0))

    def append_row(self, spreadsheet_id: str, tab_name: str, row: list[Any]) -> None:
        """Append one row after the last data row of a tab."""
        rng = a1_range(tab_name, "A", "A")
        self._request(
            "POST",
            f"{SHEETS_BASE}/{spreadsheet_id}/values/{quote(rng, safe='')}:append",
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            json={"values": [row]},
        )

    def delete_row(self, spreadsheet_id: str, sheet_gid: int, row_number: int) -> None:
        """Delete a 1-based row from the tab with the given sheet gid."""
        body = {
            "requests": [
                {
                    "deleteDimension": {
                        "range": {
                            "sheetId": sheet_gid,
                            "dimension": "ROWS",
                            "startIndex": row_number - 1,
                            "endIndex": row_number,
                        }
                    }
                }
            ]
        }
        self._request("POST", f"{SHEETS_BASE}/{spreadsheet_id}:batchUpdate", json=body)

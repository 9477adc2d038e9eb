"""
ServiceNow case-management client.

Reads and updates case records through the ServiceNow Table API and forwards
arbitrary requests for the pass-through proxy. The caller's bearer token is
passed through unchanged; this service never holds user credentials.
"""
from typing import Any, Dict, Mapping, Optional

import httpx

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# Request headers forwarded to ServiceNow; host/connection are never forwarded
FORWARDED_HEADERS = ("authorization", "accept", "content-type", "x-domain")


class ServiceNowError(Exception):
    """A ServiceNow call failed or returned an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ServiceNowNotConfigured(ServiceNowError):
    """No ServiceNow instance is configured."""


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return ""
    return error.get("detail") or error.get("message") or ""


def forwarded_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Pick the headers that are passed through to ServiceNow."""
    lowered = {k.lower(): v for k, v in headers.items()}
    return {name: lowered[name] for name in FORWARDED_HEADERS if lowered.get(name)}


class ServiceNowClient:
    """
    Thin async client for a ServiceNow instance.

    Usage:
        client = ServiceNowClient(settings.SERVICENOW_INSTANCE)
        record = await client.get_record("incident", sys_id, token=bearer)
    """

    def __init__(
        self,
        instance_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.instance_url = instance_url.rstrip("/")
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout or settings.SERVICENOW_TIMEOUT_SECONDS
        )

    @property
    def configured(self) -> bool:
        return bool(self.instance_url)

    async def aclose(self) -> None:
        await self._http.aclose()

    def _url(self, path: str) -> str:
        if not self.configured:
            raise ServiceNowNotConfigured("SERVICENOW_INSTANCE is not configured")
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.instance_url}{path}"

    def _headers(self, token: Optional[str]) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if token:
            headers["Authorization"] = token if token.startswith("Bearer ") else f"Bearer {token}"
        return headers

    def _raise_for_status(self, response: httpx.Response, label: str) -> None:
        if response.status_code == 401:
            raise ServiceNowError("Session expired", status_code=401)
        if response.status_code == 403:
            detail = _error_detail(response)
            raise ServiceNowError(
                f"Access denied (403){': ' + detail if detail else ' - check ACLs or role assignments for this table'}",
                status_code=403,
            )
        if response.is_error:
            detail = _error_detail(response)
            raise ServiceNowError(
                f"ServiceNow {response.status_code} on {label}{': ' + detail if detail else ''}",
                status_code=response.status_code,
            )

    async def get_record(
        self,
        table: str,
        sys_id: str,
        token: Optional[str] = None,
        fields: Optional[list[str]] = None,
    ) -> Dict[str, Any]:
        """
        Fetch one record from the Table API.

        Raises:
            ServiceNowError: On transport failure or an error status
        """
        path = f"/api/now/table/{table}/{sys_id}"
        params = {"sysparm_display_value": "true"}
        if fields:
            params["sysparm_fields"] = ",".join(fields)
        try:
            response = await self._http.get(self._url(path), params=params, headers=self._headers(token))
        except httpx.HTTPError as e:
            raise ServiceNowError(f"Failed to reach ServiceNow: {e}") from e
        self._raise_for_status(response, path)
        return response.json().get("result", {})

    async def update_record(
        self,
        table: str,
        sys_id: str,
        payload: Dict[str, Any],
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        PATCH a record through the Table API.

        Raises:
            ServiceNowError: On transport failure or an error status
        """
        path = f"/api/now/table/{table}/{sys_id}"
        try:
            response = await self._http.patch(self._url(path), json=payload, headers=self._headers(token))
        except httpx.HTTPError as e:
            raise ServiceNowError(f"Failed to reach ServiceNow: {e}") from e
        self._raise_for_status(response, path)
        return response.json().get("result", {})

    async def update_touch_level(
        self,
        sys_id: str,
        touch_level: str,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Write a triage outcome back to the case record."""
        result = await self.update_record(
            settings.SERVICENOW_CASE_TABLE,
            sys_id,
            {"touch_level": touch_level, "stage": "Triage", "state": "Work in progress"},
            token=token,
        )
        logger.info(f"ServiceNow touch_level updated: sys_id={sys_id} touch_level={touch_level}")
        return result

    async def forward(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        content: Optional[bytes] = None,
    ) -> httpx.Response:
        """
        Forward a request verbatim and return the raw response.

        Raises:
            ServiceNowNotConfigured: If no instance is configured
            httpx.HTTPError: On transport failure
        """
        return await self._http.request(
            method,
            self._url(path),
            headers=forwarded_headers(headers),
            content=content or None,
        )

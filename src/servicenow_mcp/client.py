"""
ServiceNow Table API client.

Thin async wrapper over /api/now/table using httpx with HTTP basic auth.
Every failure is raised as a StoreError subclass annotated with the call
that produced it, e.g. ``query_table(incident)``. Nothing is retried.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

import httpx

from .config import InstanceConfig
from .errors import (
    StoreAuthError,
    StoreConnectionError,
    StoreError,
    StoreNotFoundError,
    StoreResponseError,
)
from .filters import FilterValue, serialize

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

DisplayValue = Union[bool, str]


def _display_param(value: DisplayValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


class ServiceNowClient:
    """Client for a single ServiceNow instance."""

    def __init__(
        self,
        config: InstanceConfig,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.instance_url = config.url
        self.base_url = f"{config.url}/api/now"
        self._auth = httpx.BasicAuth(config.username, config.password)
        self._timeout = timeout
        self._transport = transport

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=self._auth,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        context: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[Mapping[str, Any]] = None,
        unwrap: bool = True,
    ) -> Any:
        """Send one request. With ``unwrap`` the ``result`` member of the body is returned."""
        logger.debug(f"{method} {self.base_url}{path} params={params} [SNMCP-REQ]")

        try:
            async with self._http() as http:
                response = await http.request(method, path, params=params, json=json)
        except httpx.TimeoutException:
            logger.error(f"Request timeout for {context} [SNMCP-TIMEOUT]")
            raise StoreConnectionError(
                context, f"Request to {self.instance_url} timed out"
            ) from None
        except httpx.RequestError as e:
            logger.error(f"Connection failed to {self.instance_url}: {e} [SNMCP-CONN]")
            raise StoreConnectionError(
                context, f"No response received from {self.instance_url}"
            ) from e

        if not response.is_success:
            raise self._error_for(response, context)

        if not unwrap and not response.content:
            return None

        # AIDEV-NOTE: unexpected-bodies; a hibernating instance or a proxy can answer 2xx with HTML
        try:
            body = response.json()
        except ValueError:
            logger.error(f"Non-JSON response for {context}: HTTP {response.status_code} [SNMCP-BADBODY]")
            raise StoreResponseError(
                context, "Response body is not valid JSON", response.status_code
            ) from None

        if not unwrap:
            return body
        if not isinstance(body, dict) or "result" not in body:
            logger.error(f"Response for {context} has no result [SNMCP-BADBODY]")
            raise StoreResponseError(
                context, "Response body has no result", response.status_code
            )
        return body["result"]

    def _error_for(self, response: httpx.Response, context: str) -> StoreError:
        status = response.status_code
        message = f"HTTP {status} - {response.reason_phrase}"
        detail = None

        # AIDEV-NOTE: table-api-errors; error bodies look like {"error": {"message", "detail"}, "status": "failure"}
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            message = body["error"].get("message") or message
            detail = body["error"].get("detail")

        if status in (401, 403):
            logger.error(f"Authentication failed for {context}: HTTP {status} [SNMCP-AUTH]")
            return StoreAuthError(context, message, status)
        if status == 404:
            logger.warning(f"Not found for {context} [SNMCP-404]")
            return StoreNotFoundError(context, message)

        logger.error(f"API error for {context}: HTTP {status} {message} [SNMCP-APIERR]")
        return StoreResponseError(context, message, status, detail)

    @staticmethod
    def _read_params(
        fields: Optional[list[str]],
        display_value: Optional[DisplayValue],
        exclude_reference_link: bool,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if fields:
            params["sysparm_fields"] = ",".join(fields)
        if display_value is not None:
            params["sysparm_display_value"] = _display_param(display_value)
        if exclude_reference_link:
            params["sysparm_exclude_reference_link"] = "true"
        return params

    async def query_table(
        self,
        table: str,
        filter: Optional[Mapping[str, FilterValue]] = None,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        fields: Optional[list[str]] = None,
        display_value: Optional[DisplayValue] = None,
        exclude_reference_link: bool = False,
    ) -> list[dict[str, Any]]:
        """Query a table. An empty or missing filter sends no sysparm_query."""
        params = self._read_params(fields, display_value, exclude_reference_link)

        query = serialize(filter) if filter else ""
        if query:
            params["sysparm_query"] = query
        if limit:
            params["sysparm_limit"] = limit
        if offset:
            params["sysparm_offset"] = offset

        return await self._request("GET", f"/table/{table}", f"query_table({table})", params=params)

    async def get_record(
        self,
        table: str,
        sys_id: str,
        *,
        fields: Optional[list[str]] = None,
        display_value: Optional[DisplayValue] = None,
        exclude_reference_link: bool = False,
    ) -> dict[str, Any]:
        params = self._read_params(fields, display_value, exclude_reference_link)
        return await self._request(
            "GET", f"/table/{table}/{sys_id}", f"get_record({table}, {sys_id})", params=params
        )

    async def create_record(self, table: str, data: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request("POST", f"/table/{table}", f"create_record({table})", json=data)

    async def update_record(
        self, table: str, sys_id: str, data: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Partial update (PATCH); only the given fields change."""
        return await self._request(
            "PATCH", f"/table/{table}/{sys_id}", f"update_record({table}, {sys_id})", json=data
        )

    async def delete_record(self, table: str, sys_id: str) -> None:
        await self._request(
            "DELETE", f"/table/{table}/{sys_id}", f"delete_record({table}, {sys_id})", unwrap=False
        )

    async def test_connection(self) -> bool:
        """Check credentials and connectivity by reading one incident."""
        try:
            await self.query_table("incident", limit=1)
        except StoreError as e:
            logger.warning(f"Connection test failed for {self.instance_url}: {e} [SNMCP-CONNTEST]")
            return False
        return True


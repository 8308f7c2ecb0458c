"""Tests for the Table API client, against an in-memory httpx transport."""

import base64
import json

import httpx
import pytest

from servicenow_mcp.client import ServiceNowClient
from servicenow_mcp.errors import (
    StoreAuthError,
    StoreConnectionError,
    StoreNotFoundError,
    StoreResponseError,
)
from servicenow_mcp.filters import FilterExpression, FilterLiteral, FilterOperator, Operator

from .conftest import INSTANCE_URL, SYS_ID


class Recorder:
    """Mock transport handler that records requests and replays one response."""

    def __init__(self, response=None, error=None):
        self.response = response if response is not None else httpx.Response(200, json={"result": []})
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def make_client(instance_config, recorder):
    return ServiceNowClient(instance_config, transport=httpx.MockTransport(recorder))


class TestRequests:
    async def test_query_sends_encoded_query(self, instance_config):
        recorder = Recorder(httpx.Response(200, json={"result": [{"number": "INC0010001"}]}))
        client = make_client(instance_config, recorder)

        result = await client.query_table(
            "incident",
            FilterExpression({
                "state": FilterLiteral("1"),
                "priority": FilterOperator(Operator.LTE, "3"),
            }),
            limit=10,
            fields=["number", "state"],
        )

        assert result == [{"number": "INC0010001"}]
        request = recorder.last
        assert request.method == "GET"
        assert request.url.path == "/api/now/table/incident"
        assert request.url.params["sysparm_query"] == "state=1^priority<=3"
        assert request.url.params["sysparm_limit"] == "10"
        assert request.url.params["sysparm_fields"] == "number,state"

    async def test_empty_filter_sends_no_query(self, instance_config):
        recorder = Recorder()
        client = make_client(instance_config, recorder)

        await client.query_table("incident", FilterExpression(), limit=100)

        assert "sysparm_query" not in recorder.last.url.params
        assert recorder.last.url.params["sysparm_limit"] == "100"

    async def test_read_options(self, instance_config):
        recorder = Recorder()
        client = make_client(instance_config, recorder)

        await client.query_table(
            "sc_task", offset=20, display_value="all", exclude_reference_link=True
        )

        params = recorder.last.url.params
        assert params["sysparm_offset"] == "20"
        assert params["sysparm_display_value"] == "all"
        assert params["sysparm_exclude_reference_link"] == "true"

    async def test_basic_auth_and_json_headers(self, instance_config):
        recorder = Recorder()
        client = make_client(instance_config, recorder)

        await client.query_table("incident")

        token = base64.b64encode(b"admin:secret").decode()
        assert recorder.last.headers["Authorization"] == f"Basic {token}"
        assert recorder.last.headers["Accept"] == "application/json"
        assert str(recorder.last.url).startswith(f"{INSTANCE_URL}/api/now/table/incident")

    async def test_get_record(self, instance_config, incident):
        recorder = Recorder(httpx.Response(200, json={"result": incident}))
        client = make_client(instance_config, recorder)

        result = await client.get_record("incident", SYS_ID, fields=["sys_id", "number"])

        assert result == incident
        assert recorder.last.url.path == f"/api/now/table/incident/{SYS_ID}"
        assert recorder.last.url.params["sysparm_fields"] == "sys_id,number"

    async def test_create_posts_json(self, instance_config, incident):
        recorder = Recorder(httpx.Response(201, json={"result": incident}))
        client = make_client(instance_config, recorder)

        result = await client.create_record("incident", {"short_description": "X", "priority": "1"})

        assert result["number"] == "INC0010001"
        assert recorder.last.method == "POST"
        assert json.loads(recorder.last.content) == {"short_description": "X", "priority": "1"}

    async def test_update_patches_only_given_fields(self, instance_config, incident):
        recorder = Recorder(httpx.Response(200, json={"result": incident}))
        client = make_client(instance_config, recorder)

        await client.update_record("incident", SYS_ID, {"state": "2"})

        assert recorder.last.method == "PATCH"
        assert recorder.last.url.path == f"/api/now/table/incident/{SYS_ID}"
        assert json.loads(recorder.last.content) == {"state": "2"}

    async def test_delete_with_empty_body(self, instance_config):
        recorder = Recorder(httpx.Response(204))
        client = make_client(instance_config, recorder)

        assert await client.delete_record("incident", SYS_ID) is None
        assert recorder.last.method == "DELETE"


class TestErrors:
    async def test_unauthorized(self, instance_config):
        recorder = Recorder(httpx.Response(401, json={
            "error": {"message": "User Not Authenticated", "detail": "Required to provide Auth information"},
            "status": "failure",
        }))
        client = make_client(instance_config, recorder)

        with pytest.raises(StoreAuthError) as exc_info:
            await client.query_table("incident")

        assert exc_info.value.status_code == 401
        assert str(exc_info.value) == (
            "ServiceNow Authentication Error (query_table(incident)): User Not Authenticated"
        )

    async def test_forbidden_is_auth_error(self, instance_config):
        client = make_client(instance_config, Recorder(httpx.Response(403)))

        with pytest.raises(StoreAuthError) as exc_info:
            await client.create_record("incident", {"short_description": "X"})
        assert exc_info.value.status_code == 403

    async def test_not_found(self, instance_config):
        recorder = Recorder(httpx.Response(404, json={
            "error": {"message": "No Record found", "detail": "Record doesn't exist"},
            "status": "failure",
        }))
        client = make_client(instance_config, recorder)

        with pytest.raises(StoreNotFoundError) as exc_info:
            await client.get_record("incident", SYS_ID)

        assert exc_info.value.context == f"get_record(incident, {SYS_ID})"
        assert exc_info.value.message == "No Record found"

    async def test_error_payload_message_and_detail(self, instance_config):
        recorder = Recorder(httpx.Response(400, json={
            "error": {"message": "Invalid table", "detail": "Table 'bogus' does not exist"},
            "status": "failure",
        }))
        client = make_client(instance_config, recorder)

        with pytest.raises(StoreResponseError) as exc_info:
            await client.query_table("bogus")

        error = exc_info.value
        assert error.status_code == 400
        assert error.detail == "Table 'bogus' does not exist"
        assert str(error) == (
            "ServiceNow API Error (query_table(bogus)): "
            "Invalid table - Table 'bogus' does not exist"
        )

    async def test_non_json_error_body(self, instance_config):
        client = make_client(instance_config, Recorder(httpx.Response(502, text="Bad Gateway")))

        with pytest.raises(StoreResponseError) as exc_info:
            await client.query_table("incident")

        assert exc_info.value.status_code == 502
        assert exc_info.value.message == "HTTP 502 - Bad Gateway"

    async def test_html_success_body(self, instance_config):
        recorder = Recorder(httpx.Response(200, text="<html>Instance Hibernating</html>"))
        client = make_client(instance_config, recorder)

        with pytest.raises(StoreResponseError) as exc_info:
            await client.query_table("incident")

        assert exc_info.value.status_code == 200
        assert str(exc_info.value) == (
            "ServiceNow API Error (query_table(incident)): Response body is not valid JSON"
        )

    async def test_success_body_without_result(self, instance_config):
        client = make_client(instance_config, Recorder(httpx.Response(200, json={"status": "ok"})))

        with pytest.raises(StoreResponseError, match="Response body has no result"):
            await client.get_record("incident", SYS_ID)

    async def test_empty_success_body_on_read(self, instance_config):
        client = make_client(instance_config, Recorder(httpx.Response(200)))

        with pytest.raises(StoreResponseError, match=r"create_record\(incident\)"):
            await client.create_record("incident", {"short_description": "X"})

    async def test_connection_failure(self, instance_config):
        recorder = Recorder(error=httpx.ConnectError("Name or service not known"))
        client = make_client(instance_config, recorder)

        with pytest.raises(StoreConnectionError) as exc_info:
            await client.query_table("incident")

        assert str(exc_info.value) == (
            "ServiceNow Connection Error (query_table(incident)): "
            f"No response received from {INSTANCE_URL}"
        )

    async def test_timeout(self, instance_config):
        client = make_client(instance_config, Recorder(error=httpx.ReadTimeout("timed out")))

        with pytest.raises(StoreConnectionError, match="timed out"):
            await client.update_record("incident", SYS_ID, {"state": "2"})


class TestConnectionCheck:
    async def test_success(self, instance_config):
        recorder = Recorder()
        client = make_client(instance_config, recorder)

        assert await client.test_connection() is True
        assert recorder.last.url.params["sysparm_limit"] == "1"

    async def test_rejected_credentials(self, instance_config):
        client = make_client(instance_config, Recorder(httpx.Response(401)))

        assert await client.test_connection() is False

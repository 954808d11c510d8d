"""
Tests unitarios para ConstruflowRestClient y la normalizacion header-row.
"""
from __future__ import annotations

import httpx
import pytest
from unittest.mock import AsyncMock

from construflow_sync.infrastructure.external.construflow.rest_client import (
    ConstruflowRestClient,
    convert_to_records,
    endpoint_table_name,
    stringify_value,
)
from construflow_sync.infrastructure.external.construflow.retry import (
    RetryPolicy,
    is_gateway_timeout,
    is_rest_retryable,
)
from construflow_sync.infrastructure.external.construflow.types import RestCredentials
from construflow_sync.shared.exceptions.sync import ConstruflowApiError

BASE_URL = "https://api.test/data-lake"
HEADER = {"id": "id", "name": "name"}


def _page(rows: list, *, has_more: bool, after_cursor=None) -> dict:
    meta = {"has_more": has_more}
    if after_cursor is not None:
        meta["after_cursor"] = after_cursor
    return {"data": rows, "meta": meta}


def _client(handler, *, retry_sleep=None, page_sleep=None) -> ConstruflowRestClient:
    return ConstruflowRestClient(
        RestCredentials(api_key="key", api_secret="secret"),
        base_url=BASE_URL,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        retry_policy=RetryPolicy(
            max_attempts=3,
            retry_on=is_rest_retryable,
            slow_retry_on=is_gateway_timeout,
            sleep=retry_sleep or AsyncMock(),
        ),
        sleep=page_sleep or AsyncMock(),
    )


class TestConvertToRecords:
    """Tests para la conversion de data cruda a registros."""

    def test_object_format_drops_header(self):
        raw = [HEADER, {"id": 1, "name": "A"}, {"id": 2, "name": "B"}]

        assert convert_to_records(raw) == [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}]

    def test_legacy_array_format_zips_with_header(self):
        raw = [["id", "name"], [1, "A"], [2, "B"]]

        assert convert_to_records(raw) == [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}]

    def test_header_only_or_empty_returns_nothing(self):
        assert convert_to_records([]) == []
        assert convert_to_records([HEADER]) == []

    def test_stringify_converts_values(self):
        raw = [{"id": "id", "active": "active", "note": "note"}, {"id": 5, "active": True, "note": None}]

        assert convert_to_records(raw, stringify=True) == [{"id": "5", "active": "true", "note": None}]

    def test_stringify_value(self):
        assert stringify_value(False) == "false"
        assert stringify_value(3.5) == "3.5"
        assert stringify_value(None) is None

    def test_endpoint_table_name(self):
        assert endpoint_table_name("issues-locals") == "issues_locals"
        assert endpoint_table_name("phases") == "phases"


class TestFetchEndpoint:
    """Tests para la paginacion del data-lake."""

    @pytest.mark.asyncio
    async def test_repeated_headers_are_dropped_after_first_page(self):
        pages = [
            _page([HEADER, {"id": 1, "name": "A"}, {"id": 2, "name": "B"}], has_more=True, after_cursor=2),
            _page([HEADER, {"id": 3, "name": "C"}], has_more=True, after_cursor=3),
            _page([HEADER, {"id": 4, "name": "D"}], has_more=False),
        ]
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=pages[len(requests) - 1])

        page_sleep = AsyncMock()
        client = _client(handler, page_sleep=page_sleep)

        raw = await client.fetch_endpoint("phases")

        # total de filas - (paginas - 1) headers repetidos
        assert len(raw) == 7 - 2
        assert raw[0] == HEADER
        assert [r["id"] for r in convert_to_records(raw)] == [1, 2, 3, 4]

        params = [r.url.params for r in requests]
        assert [p["page[include_header]"] for p in params] == ["true", "false", "false"]
        assert [p["page[after]"] for p in params] == ["0", "2", "3"]
        assert params[0]["templateVersion"] == "9.0.0"
        assert params[0]["connectorVersion"] == "3.0.0"
        assert requests[0].url.path == "/data-lake/phases"
        assert requests[0].headers["Authorization"].startswith("Basic ")
        assert page_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_missing_cursor_stops_with_partial_data(self, loguru_messages):
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            return httpx.Response(200, json=_page([HEADER, {"id": 1, "name": "A"}], has_more=True))

        records = await _client(handler).fetch_records("categories")

        assert records == [{"id": 1, "name": "A"}]
        assert calls["count"] == 1
        assert any("Cursor de paginacion ausente" in m for m in loguru_messages)

    @pytest.mark.asyncio
    async def test_gateway_timeout_is_retried_with_longer_wait(self):
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            if calls["count"] == 1:
                return httpx.Response(504)
            return httpx.Response(200, json=_page([HEADER, {"id": 1, "name": "A"}], has_more=False))

        retry_sleep = AsyncMock()
        records = await _client(handler, retry_sleep=retry_sleep).fetch_records("phases")

        assert records == [{"id": 1, "name": "A"}]
        assert calls["count"] == 2
        # base 1s * 2**1 * multiplicador 2 del 504
        retry_sleep.assert_awaited_once_with(4.0)

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            return httpx.Response(401, json={"message": "Unauthorized"})

        with pytest.raises(httpx.HTTPStatusError):
            await _client(handler).fetch_endpoint("phases")

        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_non_json_body_raises_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(ConstruflowApiError):
            await _client(handler).fetch_endpoint("phases")

    @pytest.mark.asyncio
    async def test_projects_are_stringified_by_default(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_page(
                [{"id": "id", "name": "name", "archived": "archived"}, {"id": 10, "name": "Torre", "archived": False}],
                has_more=False,
            ))

        records = await _client(handler).fetch_records("projects")

        assert records == [{"id": "10", "name": "Torre", "archived": "false"}]


class TestFetchMany:
    """Tests para lookups y relaciones (fallas aisladas por endpoint)."""

    @pytest.mark.asyncio
    async def test_failing_lookup_yields_empty_list(self):
        def handler(request: httpx.Request) -> httpx.Response:
            endpoint = request.url.path.rsplit("/", 1)[-1]
            if endpoint == "phases":
                return httpx.Response(500)
            return httpx.Response(200, json=_page([HEADER, {"id": 1, "name": endpoint}], has_more=False))

        lookups = await _client(handler).fetch_all_lookups()

        assert list(lookups) == ["projects", "phases", "categories", "disciplines", "locals"]
        assert lookups["phases"] == []
        assert lookups["categories"] == [{"id": 1, "name": "categories"}]

    @pytest.mark.asyncio
    async def test_relationships_use_smaller_page_size(self):
        sizes: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            sizes.append(request.url.params["page[size]"])
            return httpx.Response(200, json=_page([{"issue_id": "issue_id"}, {"issue_id": 1}], has_more=False))

        relationships = await _client(handler).fetch_relationships()

        assert list(relationships) == ["issues-locals", "issues-disciplines"]
        assert sizes == ["500", "500"]

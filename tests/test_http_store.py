"""Tests for the REST-backed instance stores using a mock transport."""

import json

import httpx
import pytest

from flowsync.resources.http_store import (
    PAGE_SIZE,
    HttpDashboardStore,
    HttpDefinitionStore,
    HttpFileStore,
    InstanceClientConfig,
)
from flowsync.sync.errors import ConfigurationError, InstanceError, ValidationError

API = "/api/v1/main"


def _store(cls, handler, **kwargs):
    config = InstanceClientConfig(transport=httpx.MockTransport(handler), **kwargs)
    return cls(config)


# --- Client Config Tests ---


def test_config_requires_both_credentials():
    with pytest.raises(ConfigurationError):
        InstanceClientConfig(username="admin")


def test_config_api_base():
    config = InstanceClientConfig(url="https://kestra.example.com/", tenant="acme")
    assert config.api_base == "https://kestra.example.com/api/v1/acme"


def test_basic_auth_sent():
    seen = []

    def handler(request):
        seen.append(request.headers.get("authorization"))
        return httpx.Response(200, json=["company"])

    store = _store(HttpDefinitionStore, handler, username="admin", password="secret")
    assert store.list_scopes() == ["company"]
    assert seen[0].startswith("Basic ")


# --- Definition Store Tests ---


def test_definition_list_filters_child_namespaces():
    def handler(request):
        path = request.url.path
        if path == f"{API}/flows/search":
            assert request.url.params["namespace"] == "company"
            assert request.url.params["size"] == str(PAGE_SIZE)
            return httpx.Response(200, json={"results": [
                {"id": "a", "namespace": "company", "revision": 3},
                {"id": "b", "namespace": "company.child", "revision": 1},
            ], "total": 2})
        if path == f"{API}/flows/company/a":
            assert request.url.params["source"] == "true"
            return httpx.Response(200, json={"id": "a", "source": "id: a\n", "revision": 3})
        return httpx.Response(404)

    items = _store(HttpDefinitionStore, handler).list("company")

    assert len(items) == 1
    assert items[0].id == "a"
    assert items[0].content == "id: a\n"
    assert items[0].change_marker == "3"


def test_definition_write_imports_yaml():
    captured = {}

    def handler(request):
        captured["method"] = request.method
        captured["path"] = request.url.path
        captured["body"] = request.read()
        return httpx.Response(200, json=[{"id": "a", "namespace": "company", "revision": 4}])

    marker = _store(HttpDefinitionStore, handler).write("company", "a", "id: a\n")

    assert marker == "4"
    assert captured["method"] == "POST"
    assert captured["path"] == f"{API}/flows/import"
    assert b'name="fileUpload"' in captured["body"]
    assert b"id: a\n" in captured["body"]


def test_definition_write_rejected_is_validation_error():
    def handler(request):
        return httpx.Response(422, json={"message": "Invalid flow: tasks must not be empty"})

    with pytest.raises(ValidationError) as exc:
        _store(HttpDefinitionStore, handler).write("company", "a", "id: a\n")
    assert "tasks must not be empty" in str(exc.value)


def test_definition_delete():
    calls = []

    def handler(request):
        calls.append((request.method, request.url.path))
        return httpx.Response(204)

    _store(HttpDefinitionStore, handler).delete("company", "a")
    assert calls == [("DELETE", f"{API}/flows/company/a")]


def test_definition_validate_reports_constraints():
    def handler(request):
        assert request.headers["content-type"] == "application/x-yaml"
        return httpx.Response(200, json=[{"flow": "a", "constraints": "tasks: must not be empty"}])

    result = _store(HttpDefinitionStore, handler).validate("id: a\n")
    assert result.issues == ["tasks: must not be empty"]


def test_definition_validate_passes():
    def handler(request):
        return httpx.Response(200, json=[{"flow": "a"}])

    assert _store(HttpDefinitionStore, handler).validate("id: a\n").passed


# --- File Store Tests ---


def test_file_list_walks_directories():
    listings = {
        "/": [{"fileName": "sql", "type": "Directory"}, {"fileName": "run.sh", "type": "File"}],
        "/sql": [{"fileName": "q.sql", "type": "File"}],
    }
    contents = {"/run.sh": b"echo hi", "/sql/q.sql": b"select 1"}

    def handler(request):
        path = request.url.params["path"]
        if request.url.path == f"{API}/namespaces/company/files/directory":
            return httpx.Response(200, json=listings[path])
        if request.url.path == f"{API}/namespaces/company/files":
            return httpx.Response(200, content=contents[path])
        return httpx.Response(404)

    items = _store(HttpFileStore, handler).list("company")

    assert [(i.id, i.content) for i in items] == [("run.sh", b"echo hi"), ("sql/q.sql", b"select 1")]
    assert len(items[0].change_marker) == 64


def test_file_write_and_delete():
    calls = []

    def handler(request):
        calls.append((request.method, request.url.params["path"]))
        return httpx.Response(200)

    store = _store(HttpFileStore, handler)
    store.write("company", "sql/q.sql", b"select 1")
    store.delete("company", "sql/q.sql")

    assert calls == [("POST", "/sql/q.sql"), ("DELETE", "/sql/q.sql")]
    assert store.validate(b"\x00").passed


# --- Dashboard Store Tests ---


def test_dashboard_list_pages():
    pages = []

    def handler(request):
        page = int(request.url.params["page"])
        pages.append(page)
        count = PAGE_SIZE if page == 1 else 1
        results = [{"id": f"d{page}-{i}", "sourceCode": f"id: d{page}-{i}\n"} for i in range(count)]
        return httpx.Response(200, json={"results": results})

    items = _store(HttpDashboardStore, handler).list("")

    assert pages == [1, 2]
    assert len(items) == PAGE_SIZE + 1


def test_dashboard_list_fetches_missing_source():
    def handler(request):
        if request.url.path == f"{API}/dashboards":
            return httpx.Response(200, json={"results": [{"id": "overview"}]})
        return httpx.Response(200, json={"id": "overview", "sourceCode": "id: overview\n"})

    items = _store(HttpDashboardStore, handler).list("")
    assert items[0].content == "id: overview\n"


def test_dashboard_write_creates_then_updates():
    calls = []
    existing = set()

    def handler(request):
        calls.append((request.method, request.url.path))
        if request.method == "GET":
            return httpx.Response(200 if "overview" in existing else 404, json={})
        existing.add("overview")
        return httpx.Response(200, json={"id": "overview"})

    store = _store(HttpDashboardStore, handler)
    store.write("", "overview", "id: overview\ntitle: A\n")
    store.write("", "overview", "id: overview\ntitle: B\n")

    assert calls == [
        ("GET", f"{API}/dashboards/overview"),
        ("POST", f"{API}/dashboards"),
        ("GET", f"{API}/dashboards/overview"),
        ("PUT", f"{API}/dashboards/overview"),
    ]


def test_dashboard_write_unexpected_lookup_status_does_not_create():
    for status in (401, 500):
        calls = []

        def handler(request):
            calls.append(request.method)
            return httpx.Response(status, json={"message": "denied"})

        with pytest.raises(InstanceError, match=str(status)):
            _store(HttpDashboardStore, handler).write("", "overview", "id: overview\n")
        assert calls == ["GET"]


# --- Error Tests ---


def test_server_error_is_instance_error():
    def handler(request):
        return httpx.Response(500, text="boom")

    with pytest.raises(InstanceError, match="500"):
        _store(HttpDefinitionStore, handler).delete("company", "a")


def test_connection_error_is_instance_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(InstanceError, match="Failed to reach instance"):
        _store(HttpDefinitionStore, handler).list_scopes()


def test_unexpected_400_without_validation_is_instance_error():
    def handler(request):
        return httpx.Response(400, content=json.dumps({"message": "bad"}).encode())

    with pytest.raises(InstanceError, match="bad"):
        _store(HttpFileStore, handler).delete("company", "x.txt")

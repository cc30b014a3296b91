"""Instance stores backed by the orchestration instance's REST API.

All endpoints live under ``{url}/api/v1/{tenant}``. Listing endpoints are
paged with ``PAGE_SIZE`` results per page; paging stops at the first short
page.
"""

from __future__ import annotations

import hashlib
import logging
import ssl
from dataclasses import dataclass
from typing import Any

import httpx

from flowsync.resources.instance import StoredResource
from flowsync.sync.errors import ConfigurationError, InstanceError, ValidationError
from flowsync.validation import ValidationResult

log = logging.getLogger(__name__)

PAGE_SIZE = 200
YAML_CONTENT_TYPE = "application/x-yaml"


@dataclass
class InstanceClientConfig:
    """Connection settings for one instance."""

    url: str = "http://localhost:8080"
    tenant: str = "main"
    username: str | None = None
    password: str | None = None
    verify: ssl.SSLContext | bool = True
    timeout: float = 30.0
    transport: httpx.BaseTransport | None = None

    def __post_init__(self):
        if bool(self.username) != bool(self.password):
            raise ConfigurationError("Instance basic auth needs both a username and a password")

    @property
    def api_base(self) -> str:
        return f"{self.url.rstrip('/')}/api/v1/{self.tenant}"

    def build_client(self) -> httpx.Client:
        kwargs: dict[str, Any] = {
            "base_url": self.api_base,
            "timeout": self.timeout,
            "verify": self.verify,
        }
        if self.username:
            kwargs["auth"] = httpx.BasicAuth(self.username, self.password or "")
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return httpx.Client(**kwargs)


class _HttpStore:
    """Shared request handling for the per-kind stores."""

    kind_name = "resource"

    def __init__(self, config: InstanceClientConfig, client: httpx.Client | None = None):
        self.config = config
        self.client = client or config.build_client()

    def close(self):
        self.client.close()

    def _request(self, method: str, path: str, *, validating: bool = False, **kwargs) -> httpx.Response:
        try:
            resp = self.client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            raise InstanceError(f"Failed to reach instance at {self.config.url}: {exc}") from exc

        if validating and resp.status_code in (400, 422):
            raise ValidationError(
                f"Instance rejected {self.kind_name}: {_error_detail(resp)}",
                issues=[_error_detail(resp)],
            )
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise InstanceError(
                f"Instance API error {resp.status_code} on {method} {path}: {_error_detail(resp)}"
            ) from exc
        return resp

    def _exists(self, path: str) -> bool:
        """True on 200, False on 404; any other status is an instance error."""
        try:
            resp = self.client.get(path)
        except httpx.RequestError as exc:
            raise InstanceError(f"Failed to reach instance at {self.config.url}: {exc}") from exc
        if resp.status_code == 404:
            return False
        if resp.status_code != 200:
            raise InstanceError(f"Instance API error {resp.status_code} on GET {path}: {_error_detail(resp)}")
        return True

    def _paged(self, path: str, params: dict[str, Any] | None = None) -> list[dict]:
        results: list[dict] = []
        page = 1
        while True:
            resp = self._request("GET", path, params={**(params or {}), "page": page, "size": PAGE_SIZE})
            batch = resp.json().get("results", [])
            results.extend(batch)
            if len(batch) < PAGE_SIZE:
                return results
            page += 1

    def _validate_yaml(self, path: str, content: str | bytes) -> ValidationResult:
        resp = self._request(
            "POST", path, content=_as_bytes(content), headers={"Content-Type": YAML_CONTENT_TYPE}
        )
        body = resp.json() if resp.content else []
        if isinstance(body, dict):
            body = [body]
        issues = [str(item["constraints"]) for item in body if item.get("constraints")]
        return ValidationResult(issues=issues)

    def list_scopes(self) -> list[str]:
        resp = self._request("GET", "/flows/distinct-namespaces")
        return sorted(str(ns) for ns in resp.json())


class HttpDefinitionStore(_HttpStore):
    """Workflow definitions, addressed by namespace and id."""

    kind_name = "definition"

    def list(self, scope: str) -> list[StoredResource]:
        items = []
        for summary in self._paged("/flows/search", {"namespace": scope}):
            # Search also matches child namespaces
            if summary.get("namespace") != scope:
                continue
            flow_id = summary["id"]
            resp = self._request("GET", f"/flows/{scope}/{flow_id}", params={"source": "true"})
            data = resp.json()
            items.append(
                StoredResource(
                    id=flow_id,
                    content=data.get("source", ""),
                    change_marker=str(data.get("revision", summary.get("revision", ""))),
                )
            )
        return items

    def write(self, scope: str, id: str, content: str | bytes) -> str:
        resp = self._request(
            "POST",
            "/flows/import",
            validating=True,
            files={"fileUpload": (f"{id}.yaml", _as_bytes(content), YAML_CONTENT_TYPE)},
        )
        log.debug("Imported definition %s:%s", scope, id)
        return _marker_from(resp, content)

    def delete(self, scope: str, id: str) -> None:
        self._request("DELETE", f"/flows/{scope}/{id}")

    def validate(self, content: str | bytes) -> ValidationResult:
        return self._validate_yaml("/flows/validate", content)


class HttpFileStore(_HttpStore):
    """Namespace files; ids are POSIX paths relative to the namespace root."""

    kind_name = "file"

    def list(self, scope: str) -> list[StoredResource]:
        items = []
        for rel in self._walk(scope, ""):
            resp = self._request("GET", f"/namespaces/{scope}/files", params={"path": f"/{rel}"})
            items.append(StoredResource(id=rel, content=resp.content, change_marker=_sha256(resp.content)))
        return items

    def _walk(self, scope: str, prefix: str) -> list[str]:
        resp = self._request("GET", f"/namespaces/{scope}/files/directory", params={"path": f"/{prefix}"})
        found = []
        for entry in resp.json() or []:
            name = entry.get("fileName", "")
            rel = f"{prefix}/{name}" if prefix else name
            if entry.get("type") == "Directory":
                found.extend(self._walk(scope, rel))
            else:
                found.append(rel)
        return sorted(found)

    def write(self, scope: str, id: str, content: str | bytes) -> str:
        data = _as_bytes(content)
        self._request(
            "POST",
            f"/namespaces/{scope}/files",
            params={"path": f"/{id}"},
            files={"fileContent": (id.rsplit("/", 1)[-1], data, "application/octet-stream")},
        )
        return _sha256(data)

    def delete(self, scope: str, id: str) -> None:
        self._request("DELETE", f"/namespaces/{scope}/files", params={"path": f"/{id}"})

    def validate(self, content: str | bytes) -> ValidationResult:
        return ValidationResult()


class HttpDashboardStore(_HttpStore):
    """Tenant-global dashboards; the scope argument is ignored."""

    kind_name = "dashboard"

    def list(self, scope: str) -> list[StoredResource]:
        items = []
        for summary in self._paged("/dashboards"):
            source = summary.get("sourceCode")
            if source is None:
                resp = self._request("GET", f"/dashboards/{summary['id']}")
                source = resp.json().get("sourceCode", "")
            items.append(StoredResource(id=summary["id"], content=source, change_marker=_sha256(source)))
        return items

    def write(self, scope: str, id: str, content: str | bytes) -> str:
        headers = {"Content-Type": YAML_CONTENT_TYPE}
        if self._exists(f"/dashboards/{id}"):
            resp = self._request("PUT", f"/dashboards/{id}", validating=True, content=_as_bytes(content), headers=headers)
        else:
            resp = self._request("POST", "/dashboards", validating=True, content=_as_bytes(content), headers=headers)
        return _marker_from(resp, content)

    def delete(self, scope: str, id: str) -> None:
        self._request("DELETE", f"/dashboards/{id}")

    def validate(self, content: str | bytes) -> ValidationResult:
        return self._validate_yaml("/dashboards/validate", content)


def _as_bytes(content: str | bytes) -> bytes:
    return content if isinstance(content, bytes) else content.encode("utf-8")


def _sha256(content: str | bytes) -> str:
    return hashlib.sha256(_as_bytes(content)).hexdigest()


def _marker_from(resp: httpx.Response, content: str | bytes) -> str:
    try:
        body = resp.json()
    except ValueError:
        return _sha256(content)
    if isinstance(body, list):
        body = body[0] if body else {}
    if isinstance(body, dict) and body.get("revision") is not None:
        return str(body["revision"])
    return _sha256(content)


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text.strip() or resp.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body)
    return str(body)

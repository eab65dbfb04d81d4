"""Thin client for the Crowdin Enterprise REST API (v2).

Only the handful of endpoints needed to push a source file are covered:
projects, branches, directories, files and storages.
See https://support.crowdin.com/enterprise/api for the endpoint reference.
"""

import os
import json
import logging
import posixpath
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests

log = logging.getLogger("crowdin-client")

DEFAULT_API_URL = "https://fresha.crowdin.com/api/v2"
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 500
DEFAULT_TIMEOUT = 60


# ——————————————————————————————————————————————
#                  ОШИБКИ
# ——————————————————————————————————————————————
class CrowdinError(Exception):
    """Base class for everything this client raises on its own."""


class CrowdinConfigError(CrowdinError):
    pass


class CrowdinHTTPError(CrowdinError):
    def __init__(self, method: str, url: str, status_code: int, body: str):
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body
        super().__init__(f"{method} {url} failed ({status_code}): {body}")


class CrowdinLookupError(CrowdinError):
    def __init__(self, kind: str, key: Any):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


# ——————————————————————————————————————————————
#                  МОДЕЛИ
# ——————————————————————————————————————————————
@dataclass(frozen=True)
class Project:
    id: int
    name: str


@dataclass(frozen=True)
class Branch:
    id: int
    name: str


@dataclass(frozen=True)
class Directory:
    id: int
    name: str
    parent_id: Optional[int] = None
    branch_id: Optional[int] = None
    path: str = ""


@dataclass(frozen=True)
class File:
    id: int
    name: str
    directory_id: Optional[int] = None
    branch_id: Optional[int] = None


# ——————————————————————————————————————————————
#                  ПАГИНАЦИЯ
# ——————————————————————————————————————————————
def loop_all_pages(fetch_page: Callable[[Dict[str, int]], List[Any]], limit: int) -> List[Any]:
    """Call ``fetch_page({"offset": ..., "limit": ...})`` until a short page comes back.

    The first page is always requested, so an empty collection costs one call
    and a collection that is an exact multiple of ``limit`` costs one extra.
    """
    if limit < 1:
        raise ValueError(f"Page size must be positive, got {limit}")

    items: List[Any] = []
    offset = 0
    while True:
        page = fetch_page({"offset": offset, "limit": limit})
        items.extend(page)
        offset += limit
        if len(page) < limit:
            return items


def directory_paths(dirs: List[Directory]) -> List[Directory]:
    """Fill in ``path`` for each directory by walking its parent chain.

    The result does not depend on the order of ``dirs``. A parent id that is
    not present in ``dirs`` raises ``CrowdinLookupError``.
    """
    by_id = {d.id: d for d in dirs}
    cache: Dict[int, str] = {}

    def path_of(d: Directory) -> str:
        if d.id in cache:
            return cache[d.id]
        chain = [d]
        seen = {d.id}
        while chain[-1].parent_id is not None and chain[-1].parent_id not in cache:
            parent = by_id.get(chain[-1].parent_id)
            if parent is None:
                raise CrowdinLookupError("Parent directory", chain[-1].parent_id)
            if parent.id in seen:
                raise CrowdinError(f"Directory cycle at id {parent.id}")
            seen.add(parent.id)
            chain.append(parent)
        top = chain[-1]
        prefix = cache[top.parent_id] if top.parent_id is not None else None
        for node in reversed(chain):
            prefix = node.name if prefix is None else f"{prefix}/{node.name}"
            cache[node.id] = prefix
        return cache[d.id]

    return [
        Directory(id=d.id, name=d.name, parent_id=d.parent_id, branch_id=d.branch_id, path=path_of(d))
        for d in dirs
    ]


def _items(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [item["data"] for item in payload["data"]]


def _to_directory(raw: Dict[str, Any]) -> Directory:
    return Directory(
        id=raw["id"],
        name=raw["name"],
        parent_id=raw.get("parentId"),
        branch_id=raw.get("branchId"),
    )


def _to_file(raw: Dict[str, Any]) -> File:
    return File(
        id=raw["id"],
        name=raw["name"],
        directory_id=raw.get("directoryId"),
        branch_id=raw.get("branchId"),
    )


# ——————————————————————————————————————————————
#                  КЛИЕНТ
# ——————————————————————————————————————————————
class CrowdinClient:
    """Stateless wrapper around the REST endpoints; every call hits the API."""

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_API_URL,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        if not token or not token.strip():
            raise CrowdinConfigError("Crowdin API token is empty")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise CrowdinConfigError(f"Page size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")
        self.token = token.strip()
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_env(cls, session: Optional[requests.Session] = None) -> "CrowdinClient":
        token = os.environ.get("CROWDIN_API_TOKEN", "").strip()
        if not token:
            raise CrowdinConfigError("Set env var CROWDIN_API_TOKEN")

        base_url = os.environ.get("CROWDIN_API_URL", "").strip() or DEFAULT_API_URL
        try:
            page_size = int(os.environ.get("CROWDIN_PAGE_SIZE", DEFAULT_PAGE_SIZE))
            timeout = float(os.environ.get("CROWDIN_TIMEOUT", DEFAULT_TIMEOUT))
        except ValueError as e:
            raise CrowdinConfigError(f"Bad numeric setting: {e}") from e

        return cls(token, base_url=base_url, page_size=page_size, timeout=timeout, session=session)

    # —— transport ——

    def request(
        self,
        path: str,
        method: str = "GET",
        content_type: str = "application/json",
        body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Send one request and return the decoded JSON response.

        A dict body is JSON-encoded when ``content_type`` is JSON; anything
        else goes out as-is. Status >= 400 raises ``CrowdinHTTPError``.
        """
        method = method.upper()
        url = f"{self.base_url}/{path.lstrip('/')}"
        hdr = {
            "Content-Type": content_type,
            "Authorization": f"Bearer {self.token}",
        }
        if headers:
            hdr.update(headers)

        data = None
        if body is not None:
            if content_type == "application/json" and isinstance(body, dict):
                data = json.dumps(body)
            else:
                data = body

        log.debug("%s %s params=%s", method, url, params)
        r = self.session.request(method, url, headers=hdr, params=params or None, data=data, timeout=self.timeout)
        if r.status_code >= 400:
            raise CrowdinHTTPError(method, url, r.status_code, r.text)
        return r.json()

    def _list(self, path: str, params: Dict[str, Any], limit: Optional[int] = None) -> List[Dict[str, Any]]:
        limit = limit or self.page_size
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise CrowdinConfigError(f"Page size must be between 1 and {MAX_PAGE_SIZE}, got {limit}")
        return loop_all_pages(
            lambda page: _items(self.request(path, params={**params, **page})),
            limit,
        )

    # —— projects / branches ——

    def get_projects(self) -> List[Project]:
        return [Project(id=p["id"], name=p["name"]) for p in _items(self.request("projects"))]

    def get_branches(self, project_id: int) -> List[Branch]:
        return [
            Branch(id=b["id"], name=b["name"])
            for b in _items(self.request(f"projects/{project_id}/branches"))
        ]

    def get_project_id(self, name: str) -> int:
        for project in self.get_projects():
            if project.name == name:
                return project.id
        raise CrowdinLookupError("Project", name)

    def get_branch_id(self, project_id: int, name: str) -> int:
        for branch in self.get_branches(project_id):
            if branch.name == name:
                return branch.id
        raise CrowdinLookupError("Branch", name)

    # —— directories ——

    def get_directories(
        self, project_id: int, branch_id: Optional[int] = None, limit: Optional[int] = None
    ) -> List[Directory]:
        """List directories with their derived paths.

        Without ``branch_id`` only directories outside any branch are kept.
        ``limit`` overrides the client page size for this call.
        """
        path = f"projects/{project_id}/directories"
        if branch_id is not None:
            raw = self._list(path, {"branchId": branch_id, "recursion": 1}, limit)
        else:
            raw = self._list(path, {}, limit)

        dirs = [_to_directory(d) for d in raw]
        if branch_id is None:
            dirs = [d for d in dirs if not d.branch_id]
        return directory_paths(dirs)

    def add_directory(self, project_id: int, parent: Optional[Directory], name: str) -> Directory:
        body: Dict[str, Any] = {"name": name}
        if parent is not None:
            body["parentId"] = parent.id

        raw = self.request(f"projects/{project_id}/directories", method="POST", body=body)["data"]
        created = _to_directory(raw)
        return Directory(
            id=created.id,
            name=created.name,
            parent_id=created.parent_id,
            branch_id=created.branch_id,
            path=f"{parent.path}/{name}" if parent is not None else name,
        )

    # —— files ——

    def get_files(
        self, project_id: int, branch_id: Optional[int] = None, limit: Optional[int] = None
    ) -> List[File]:
        path = f"projects/{project_id}/files"
        if branch_id is not None:
            raw = self._list(path, {"branchId": branch_id, "recursion": 1}, limit)
        else:
            raw = self._list(path, {}, limit)

        files = [_to_file(f) for f in raw]
        if branch_id is None:
            files = [f for f in files if not f.branch_id]
        return files

    def add_file(
        self,
        project_id: int,
        directory_id: Optional[int],
        storage_id: int,
        name: str,
        export_pattern: Optional[str] = None,
        branch_id: Optional[int] = None,
    ) -> File:
        body: Dict[str, Any] = {
            "name": posixpath.basename(name),
            "storageId": storage_id,
        }
        if directory_id is not None:
            body["directoryId"] = directory_id
        elif branch_id is not None:
            body["branchId"] = branch_id
        if export_pattern:
            body["exportOptions"] = {"exportPattern": export_pattern}

        return _to_file(self.request(f"projects/{project_id}/files", method="POST", body=body)["data"])

    def update_file(self, project_id: int, file_id: int, storage_id: int) -> File:
        body = {"storageId": storage_id}
        raw = self.request(f"projects/{project_id}/files/{file_id}/update", method="POST", body=body)["data"]
        return _to_file(raw)

    # —— storages ——

    def add_storage(self, path: str) -> int:
        with open(path, "rb") as f:
            content = f.read()

        resp = self.request(
            "storages",
            method="POST",
            content_type="text/plain",
            body=content,
            headers={"Crowdin-API-FileName": quote(os.path.basename(path))},
        )
        return resp["data"]["id"]

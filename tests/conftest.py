"""In-memory stand-in for the handful of Crowdin endpoints the uploader uses."""

import json
import re
from unittest.mock import Mock

import pytest

from crowdin_client import CrowdinClient


class FakeCrowdin:
    def __init__(self):
        self.projects = []
        self.branches = {}
        self.directories = []
        self.files = []
        self.calls = []
        self.storage_bodies = []
        self._next_id = 1000

    def new_id(self):
        self._next_id += 1
        return self._next_id

    # —— seeding ——

    def add_project(self, id, name):
        self.projects.append({"id": id, "name": name})

    def add_branch(self, project_id, id, name):
        self.branches.setdefault(project_id, []).append({"id": id, "name": name})

    def add_dir(self, id, name, parent_id=None, branch_id=None):
        self.directories.append({"id": id, "name": name, "parentId": parent_id, "branchId": branch_id})

    def add_file(self, id, name, directory_id=None, branch_id=None):
        self.files.append({"id": id, "name": name, "directoryId": directory_id, "branchId": branch_id})

    # —— transport ——

    def request(self, method, url, headers=None, params=None, data=None, timeout=None):
        path = url.split("/api/v2/", 1)[1]
        params = dict(params or {})
        body = data
        if headers and headers.get("Content-Type") == "application/json" and data is not None:
            body = json.loads(data)
        self.calls.append((method, path, params, body))
        status, payload = self.route(method, path, params, body)
        resp = Mock()
        resp.status_code = status
        resp.text = payload if isinstance(payload, str) else json.dumps(payload)
        resp.json.return_value = payload
        return resp

    def route(self, method, path, params, body):
        if method == "POST" and path == "storages":
            self.storage_bodies.append(body)
            return 201, {"data": {"id": self.new_id()}}
        if method == "GET" and path == "projects":
            return 200, self.envelope(self.projects)

        m = re.fullmatch(r"projects/(\d+)/(\w+)(?:/(\d+)/update)?", path)
        if not m:
            return 404, "not found"
        project_id, kind, file_id = int(m.group(1)), m.group(2), m.group(3)

        if kind == "branches":
            return 200, self.envelope(self.branches.get(project_id, []))
        if kind == "directories" and method == "GET":
            return 200, self.page(self.scoped(self.directories, params), params)
        if kind == "directories" and method == "POST":
            d = {"id": self.new_id(), "name": body["name"], "parentId": body.get("parentId"), "branchId": None}
            self.directories.append(d)
            return 201, {"data": d}
        if kind == "files" and method == "GET":
            return 200, self.page(self.scoped(self.files, params), params)
        if kind == "files" and method == "POST" and file_id:
            f = next(f for f in self.files if f["id"] == int(file_id))
            return 200, {"data": f}
        if kind == "files" and method == "POST":
            f = {
                "id": self.new_id(),
                "name": body["name"],
                "directoryId": body.get("directoryId"),
                "branchId": body.get("branchId"),
            }
            self.files.append(f)
            return 201, {"data": f}
        return 404, "not found"

    @staticmethod
    def scoped(items, params):
        if "branchId" in params:
            return [i for i in items if i["branchId"] == params["branchId"]]
        return items

    @staticmethod
    def page(items, params):
        offset, limit = params["offset"], params["limit"]
        return {"data": [{"data": i} for i in items[offset:offset + limit]]}

    @staticmethod
    def envelope(items):
        return {"data": [{"data": i} for i in items]}

    def posts(self, kind):
        return [c for c in self.calls if c[0] == "POST" and c[1].endswith(kind)]


@pytest.fixture
def fake():
    return FakeCrowdin()


@pytest.fixture
def client(fake):
    return CrowdinClient("test-token", session=fake)


@pytest.fixture
def source_file(tmp_path):
    p = tmp_path / "default.pot"
    p.write_text('msgid "hello"\nmsgstr ""\n', encoding="utf-8")
    return p

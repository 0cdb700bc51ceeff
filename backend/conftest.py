import httpx
import pytest
from fastapi.testclient import TestClient

import main


class ModelStub:
    """Stands in for the hosted model and records every request it receives"""

    def __init__(self, status_code=200, json=None, text=None, exc=None):
        self.status_code = status_code
        self.json = json
        self.text = text
        self.exc = exc
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        return httpx.Response(self.status_code, json=self.json)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    path = tmp_path / "uploads"
    monkeypatch.setattr(main, "UPLOAD_DIR", str(path))
    return path


@pytest.fixture
def model_stub(monkeypatch):
    def install(**kwargs):
        stub = ModelStub(**kwargs)
        monkeypatch.setattr(main, "build_http_client", stub.client)
        return stub
    return install


@pytest.fixture
def client(upload_dir):
    with TestClient(main.app) as c:
        yield c

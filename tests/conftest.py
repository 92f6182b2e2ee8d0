"""
Shared fixtures: an in-memory backend and a relay app wired to it.
"""
import pytest
from fastapi.testclient import TestClient

from llm_relay import InferenceBackend, Settings, create_app


class FakeBackend(InferenceBackend):
    """Backend returning a canned result (or raising a canned error)."""

    def __init__(self, result=None, error=None):
        self.backend_name = "fake"
        self.result = result
        self.error = error
        self.calls = []
        self.initialized = False
        self.closed = False

    async def initialize(self) -> None:
        self.initialized = True

    async def shutdown(self) -> None:
        self.closed = True

    async def run(self, model, inputs, options):
        self.calls.append((model, inputs, options))
        if self.error is not None:
            raise self.error
        # Factories keep streams fresh per call
        return self.result() if callable(self.result) else self.result

    @property
    def last_messages(self):
        return self.calls[-1][1]["messages"]


@pytest.fixture
def assets_dir(tmp_path):
    assets = tmp_path / "public"
    assets.mkdir()
    (assets / "index.html").write_text("<html>chat ui</html>")
    (assets / "app.js").write_text("console.log('chat');")
    return assets


@pytest.fixture
def settings(assets_dir):
    return Settings(
        assets_dir=str(assets_dir),
        model_id="test-model",
        system_prompt="Be brief.",
        max_tokens=64,
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def client(settings, backend):
    app = create_app(settings, backend_factory=lambda: backend)
    with TestClient(app) as client:
        yield client

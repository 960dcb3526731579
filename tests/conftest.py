"""Shared pytest fixtures for Photo Restorer tests."""

import io
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace
from typing import Generator

import pytest
from PIL import Image

from photorestorer.core.config import RestorerConfig
from photorestorer.core.kv_store import MemoryStore
from photorestorer.core.media import PreviewRegistry
from photorestorer.core.restoration_client import RestorationClient
from photorestorer.core.session import RestorationSession

TEST_MODEL_ID = "gemini-test-image"


def make_png(color: tuple[int, int, int] = (200, 180, 150), size: tuple[int, int] = (8, 8)) -> bytes:
    """Encode a small solid-colour PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_response(image: bytes | None = None, text: str | None = None, mime_type: str = "image/png"):
    """Build an object shaped like a google-genai GenerateContentResponse."""
    parts = []
    if text is not None:
        parts.append(SimpleNamespace(inline_data=None, text=text))
    if image is not None:
        parts.append(
            SimpleNamespace(inline_data=SimpleNamespace(data=image, mime_type=mime_type), text=None)
        )
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])


class FakeModels:
    """Stand-in for ``client.aio.models`` returning queued responses."""

    def __init__(self, responses: list) -> None:
        self.responses = list(responses)
        self.calls: list[dict] = []

    async def generate_content(self, *, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        item = self.responses.pop(0) if self.responses else make_response(image=make_png())
        if isinstance(item, BaseException):
            raise item
        return item


class FakeGenaiClient:
    def __init__(self, responses: list | None = None) -> None:
        self.models = FakeModels(responses or [])
        self.aio = SimpleNamespace(models=self.models)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> RestorerConfig:
    """Create a test configuration writing into a temporary data directory."""
    return RestorerConfig(
        _env_file=None,
        api_key="test-key",
        model_id=TEST_MODEL_ID,
        data_dir=str(temp_dir / "data"),
    )


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def fake_genai() -> Callable[..., FakeGenaiClient]:
    """Factory for fake Gemini clients.

    Pass responses (or exceptions to raise) in call order; once the queue is
    exhausted every call returns a fresh image.
    """

    def _factory(*responses) -> FakeGenaiClient:
        return FakeGenaiClient(list(responses))

    return _factory


@pytest.fixture
def previews() -> PreviewRegistry:
    return PreviewRegistry()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def session(memory_store: MemoryStore) -> RestorationSession:
    """Session whose client always succeeds with two images."""
    client = RestorationClient(FakeGenaiClient(), TEST_MODEL_ID)
    return RestorationSession(client, memory_store, max_source_images=3)


@pytest.fixture
def png_factory() -> Callable[..., bytes]:
    return make_png


@pytest.fixture
def response_factory() -> Callable[..., SimpleNamespace]:
    return make_response


class FakeCameraStream:
    def read_frame(self) -> Image.Image:
        return Image.new("RGB", (4, 4), (90, 80, 70))

    def stop(self) -> None:
        pass


class FakeCameraDevice:
    def open(self, facing_mode: str) -> FakeCameraStream:
        return FakeCameraStream()


@pytest.fixture
def api_genai() -> FakeGenaiClient:
    """Fake Gemini client shared with the API under test.

    Append responses or exceptions to ``api_genai.models.responses`` to
    script the next calls.
    """
    return FakeGenaiClient()


@pytest.fixture
def test_client(monkeypatch, test_config: RestorerConfig, api_genai: FakeGenaiClient):
    """FastAPI TestClient with no network or camera access.

    The lifespan runs, so the session persists into ``test_config.data_dir``.
    """
    from fastapi.testclient import TestClient

    from photorestorer.api import main

    monkeypatch.setattr(main, "config", test_config)
    monkeypatch.setattr(main, "create_genai_client", lambda cfg: api_genai)
    monkeypatch.setattr(main, "create_camera_device", lambda cfg: FakeCameraDevice())

    with TestClient(main.app) as client:
        yield client

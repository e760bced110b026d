import io
import os

os.environ["SIGNAGE_DATABASE_URL"] = "sqlite://"
os.environ["SIGNAGE_SYNC_ENABLED"] = "0"

import httpx
import pytest
from PIL import Image, ImageDraw
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from contentsync.db import Base
from contentsync.models import content_item as _content_item_model  # noqa: F401
from contentsync.models import creative as _creative_model  # noqa: F401
from contentsync.models import screen as _screen_model  # noqa: F401
from contentsync.services.cache import ResponseCache
from contentsync.services.credentials import StaticCredentialProvider
from contentsync.services.device_api import DeviceApiClient

DEVICE_API_BASE = "https://devices.test/api/v2"
TEST_TOKEN = "test-token-1234"


def make_image(pattern: str = "vertical", fmt: str = "PNG", size: tuple[int, int] = (320, 180)) -> bytes:
    """Synthetic frames with known structure for hashing tests."""
    width, height = size
    if pattern == "blank":
        image = Image.new("RGB", size, (128, 128, 128))
    elif pattern == "black":
        image = Image.new("RGB", size, (0, 0, 0))
    elif pattern == "white":
        image = Image.new("RGB", size, (255, 255, 255))
    else:
        image = Image.new("RGB", size, (255, 255, 255))
        draw = ImageDraw.Draw(image)
        if pattern in {"vertical", "vertical_marked"}:
            draw.rectangle((0, 0, width // 2 - 1, height - 1), fill=(0, 0, 0))
            if pattern == "vertical_marked":
                draw.rectangle((width - 30, height - 25, width - 11, height - 6), fill=(90, 90, 90))
        elif pattern == "horizontal":
            draw.rectangle((0, 0, width - 1, height // 2 - 1), fill=(0, 0, 0))
        elif pattern == "quadrants":
            draw.rectangle((0, 0, width // 2 - 1, height // 2 - 1), fill=(0, 0, 0))
            draw.rectangle((width // 2, height // 2, width - 1, height - 1), fill=(0, 0, 0))
        else:
            raise ValueError(f"unknown pattern {pattern!r}")
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    engine.dispose()


class FakeDeviceApi:
    """Routes MockTransport requests by path; records every request it sees."""

    def __init__(self, routes: dict | None = None) -> None:
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []

    @property
    def paths(self) -> list[str]:
        return [self._path(request) for request in self.requests]

    @staticmethod
    def _path(request: httpx.Request) -> str:
        path = request.url.path
        prefix = httpx.URL(DEVICE_API_BASE).path
        return path[len(prefix):] if path.startswith(prefix) else path

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(self._path(request))
        if route is None:
            return httpx.Response(404, json={"detail": "Not found."})
        if callable(route):
            return route(request)
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)


@pytest.fixture
def device_api():
    return FakeDeviceApi()


@pytest.fixture
def make_client(device_api):
    def factory(token: str | None = TEST_TOKEN, **kwargs) -> DeviceApiClient:
        return DeviceApiClient(
            StaticCredentialProvider(token),
            kwargs.pop("cache", None) or ResponseCache(ttl_sec=300),
            base_url=DEVICE_API_BASE,
            transport=httpx.MockTransport(device_api),
            **kwargs,
        )

    return factory

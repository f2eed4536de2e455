"""
Shared pytest fixtures for the image editor tests
"""
import base64
import io
from types import SimpleNamespace

import pytest
from PIL import Image

from gemini_image_editor.config import StaticCredentialProvider
from gemini_image_editor.editor import FileInput, GeminiGenerationClient


def image_part(data, mime_type="image/png"):
    return SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type=mime_type))


def text_part(text):
    return SimpleNamespace(text=text, inline_data=None)


def response_with(*parts):
    """Build an object shaped like a GenerateContentResponse"""
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


class RecordingTransport:
    """Transport stub that records every call instead of hitting the network"""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.api_keys = []
        self.calls = []

    def __call__(self, api_key):
        self.api_keys.append(api_key)
        return self

    async def generate_content(self, model, request):
        self.calls.append((model, request))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def png_bytes():
    """Provide a small valid PNG image"""
    buffer = io.BytesIO()
    Image.new("RGB", (4, 3), (200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_b64(png_bytes):
    return base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def cat_jpg():
    return FileInput(name="cat.jpg", content_type="image/jpeg", data=b"\xff\xd8\xff\xe0fake-jpeg")


@pytest.fixture
def dog_png(png_bytes):
    return FileInput(name="dog.png", content_type="image/png", data=png_bytes)


@pytest.fixture
def notes_txt():
    return FileInput(name="notes.txt", content_type="text/plain", data=b"hello")


@pytest.fixture
def make_transport():
    """Factory for recording transports"""
    return RecordingTransport


@pytest.fixture
def make_client():
    """Factory for a client wired to a transport and an optional API key"""

    def _make(transport, api_key="test-key"):
        return GeminiGenerationClient(StaticCredentialProvider(api_key), transport_factory=transport)

    return _make


@pytest.fixture
def responses():
    """Helpers for building fake model responses"""
    return SimpleNamespace(image=image_part, text=text_part, build=response_with)

"""Test the remote txt2img client against a fake HTTP session.

Tests for src.generation.client:
    - Model listing and default model selection
    - generate(): payload, base64 PNG decoding, texture-order flip
    - Transport, HTTP, JSON and payload failures → GenerationError
    - generate_async(): future result and callback

Run:
    pytest tests/test_generation_client.py -v
"""

import base64
import io

import numpy as np
import pytest
import requests
from PIL import Image

from src.generation import (
    GenerationClient,
    GenerationError,
    GenerationRequest,
    as_texture,
)
from src.utils import validators


def _png_base64(width: int = 4, height: int = 2) -> str:
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[0, :, 0] = 255  # top row red
    buf = io.BytesIO()
    Image.fromarray(img).save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")


class FakeResponse:
    def __init__(self, payload=None, status=200, bad_json=False):
        self.payload = payload
        self.status_code = status
        self.bad_json = bad_json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        if self.bad_json:
            raise ValueError("Expecting value: line 1 column 1")
        return self.payload


class FakeSession:
    """Records calls and replays canned responses keyed by URL suffix."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []
        self.closed = False

    def _respond(self, url):
        for suffix, response in self.responses.items():
            if url.endswith(suffix):
                if isinstance(response, Exception):
                    raise response
                return response
        raise AssertionError(f"Unexpected URL {url}")

    def get(self, url, timeout=None):
        self.calls.append(("GET", url, None, timeout))
        return self._respond(url)

    def post(self, url, json=None, timeout=None):
        self.calls.append(("POST", url, json, timeout))
        return self._respond(url)

    def close(self):
        self.closed = True


MODELS = [{"model_name": "sd15", "filename": "sd15.safetensors"}, {"model_name": "sdxl"}]


@pytest.fixture
def request_body():
    return GenerationRequest(prompt="mossy stone", steps=10, width=64, height=64)


def test_list_models_selects_first():
    session = FakeSession({"/sd-models": FakeResponse(MODELS)})
    client = GenerationClient("http://svc:7860/", session=session)
    models = client.list_models()
    assert [m.model_name for m in models] == ["sd15", "sdxl"]
    assert models[0].filename == "sd15.safetensors"
    assert client.selected_model == "sd15"
    assert session.calls[0][1] == "http://svc:7860/sdapi/v1/sd-models"


def test_list_models_keeps_configured_model():
    cfg = validators.GenerationConfigV1(defaults={"model": "sdxl"})
    session = FakeSession({"/sd-models": FakeResponse(MODELS)})
    client = GenerationClient.from_config(cfg, session=session)
    client.list_models()
    assert client.selected_model == "sdxl"


def test_generate_decodes_image(request_body):
    session = FakeSession({"/txt2img": FakeResponse({"images": [_png_base64()]})})
    client = GenerationClient("http://svc", timeout_s=12.0, session=session)
    client.selected_model = "sd15"

    image = client.generate(request_body)
    assert image.shape == (2, 4, 4)
    assert image.dtype == np.float32
    np.testing.assert_allclose(image[0, 0], [1.0, 0.0, 0.0, 1.0])
    np.testing.assert_allclose(image[1, 0], [0.0, 0.0, 0.0, 1.0])

    method, url, payload, timeout = session.calls[0]
    assert (method, url, timeout) == ("POST", "http://svc/sdapi/v1/txt2img", 12.0)
    assert payload == {"prompt": "mossy stone", "steps": 10, "width": 64, "height": 64, "model": "sd15"}

    texture = as_texture(image)
    np.testing.assert_allclose(texture[-1, 0], [1.0, 0.0, 0.0, 1.0])


@pytest.mark.parametrize("response", [
    requests.ConnectionError("refused"),
    FakeResponse(status=500),
    FakeResponse(bad_json=True),
    FakeResponse({"images": []}),
    FakeResponse(["not", "a", "dict"]),
    FakeResponse({"images": ["***not base64***"]}),
    FakeResponse({"images": [base64.b64encode(b"not an image").decode()]}),
])
def test_generate_failures_raise_generation_error(request_body, response):
    client = GenerationClient("http://svc", session=FakeSession({"/txt2img": response}))
    with pytest.raises(GenerationError):
        client.generate(request_body)


def test_malformed_model_list():
    session = FakeSession({"/sd-models": FakeResponse([{"filename": "x"}])})
    with pytest.raises(GenerationError, match="Malformed"):
        GenerationClient("http://svc", session=session).list_models()


def test_request_validation():
    with pytest.raises(ValueError):
        GenerationRequest(prompt="", steps=10)
    with pytest.raises(ValueError):
        GenerationRequest(prompt="x", width=32)


def test_generate_async_invokes_callback(request_body):
    session = FakeSession({"/txt2img": FakeResponse({"images": [_png_base64()]})})
    client = GenerationClient("http://svc", session=session)
    received = []
    try:
        future = client.generate_async(request_body, callback=received.append)
        image = future.result(timeout=10.0)
    finally:
        client.close()
    assert image.shape == (2, 4, 4)
    assert len(received) == 1
    assert session.closed


def test_generate_async_failure_skips_callback(request_body):
    session = FakeSession({"/txt2img": FakeResponse(status=503)})
    client = GenerationClient("http://svc", session=session)
    received = []
    try:
        future = client.generate_async(request_body, callback=received.append)
        with pytest.raises(GenerationError):
            future.result(timeout=10.0)
    finally:
        client.close()
    assert received == []

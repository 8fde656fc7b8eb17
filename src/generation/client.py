"""Client for a remote txt2img service (Stable Diffusion web UI API).

Endpoints:
    POST {api_url}/sdapi/v1/txt2img   {prompt, steps, width, height, model}
                                      → {"images": [<base64 PNG>, ...]}
    GET  {api_url}/sdapi/v1/sd-models → [{"model_name": ..., "filename": ...}, ...]

generate() blocks; generate_async() runs the same request on a worker
thread and returns a Future (optionally invoking a callback with the image).
Every transport, HTTP or payload problem surfaces as GenerationError.

Decoded images are RGBA FP32, top row first (as stored in the PNG). Use
as_texture() to flip them into painter texture order before seeding a
Surface.
"""

import base64
import binascii
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import requests
from pydantic import BaseModel, Field

from src.utils import fs
from src.utils.validators import GenerationConfigV1

logger = logging.getLogger(__name__)

TXT2IMG_PATH = "/sdapi/v1/txt2img"
MODELS_PATH = "/sdapi/v1/sd-models"


class GenerationError(Exception):
    """Remote generation failed (transport, HTTP status, or malformed response)."""

    pass


class GenerationRequest(BaseModel):
    """txt2img request body."""
    prompt: str = Field(..., min_length=1)
    steps: int = Field(25, ge=1, le=150)
    width: int = Field(512, ge=64, le=2048)
    height: int = Field(512, ge=64, le=2048)
    model: Optional[str] = None


@dataclass(frozen=True)
class ModelInfo:
    model_name: str
    filename: str = ""


def as_texture(image: np.ndarray) -> np.ndarray:
    """Flip a decoded (top-down) image into painter texture order (row 0 = v 0)."""
    return np.ascontiguousarray(np.flipud(image))


class GenerationClient:
    """Synchronous + future-based txt2img client.

    Parameters
    ----------
    api_url : str
        Service root, e.g. "http://127.0.0.1:7860"
    timeout_s : float
        Per-request timeout
    session : requests.Session, optional
        Shared HTTP session (a new one is created if omitted)
    """

    def __init__(self, api_url: str = "http://127.0.0.1:7860", timeout_s: float = 300.0,
                 session: Optional[requests.Session] = None):
        self.api_url = api_url.rstrip('/')
        self.timeout_s = timeout_s
        self.session = session if session is not None else requests.Session()
        self.selected_model: Optional[str] = None
        self.models: List[ModelInfo] = []
        self._executor: Optional[ThreadPoolExecutor] = None

    @classmethod
    def from_config(cls, cfg: GenerationConfigV1,
                    session: Optional[requests.Session] = None) -> "GenerationClient":
        client = cls(cfg.api_url, cfg.timeout_s, session=session)
        client.selected_model = cfg.defaults.model
        return client

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.api_url}{path}"
        try:
            if method == "GET":
                response = self.session.get(url, timeout=self.timeout_s)
            else:
                response = self.session.post(url, json=payload, timeout=self.timeout_s)
            response.raise_for_status()
        except requests.RequestException as e:
            raise GenerationError(f"{method} {url} failed: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise GenerationError(f"{method} {url} returned invalid JSON: {e}") from e

    def list_models(self) -> List[ModelInfo]:
        """Fetch available models; selects the first one if none is selected."""
        data = self._request("GET", MODELS_PATH)
        if not isinstance(data, list):
            raise GenerationError(f"Expected a model list, got {type(data).__name__}")
        try:
            models = [ModelInfo(str(m["model_name"]), str(m.get("filename", ""))) for m in data]
        except (KeyError, TypeError, AttributeError) as e:
            raise GenerationError(f"Malformed model list entry: {e}") from e

        self.models = models
        if models and not self.selected_model:
            self.selected_model = models[0].model_name
            logger.info(f"Selected model {self.selected_model}")
        logger.debug(f"Service lists {len(models)} models")
        return models

    def generate(self, request: GenerationRequest) -> np.ndarray:
        """Run txt2img and return the first image as (H, W, 4) FP32 RGBA.

        Raises
        ------
        GenerationError
            On transport/HTTP failure or an undecodable response
        """
        payload = request.model_dump()
        if payload.get("model") is None:
            payload["model"] = self.selected_model
        logger.info(
            f"Requesting {request.width}x{request.height} image "
            f"({request.steps} steps, model={payload['model']})"
        )

        data = self._request("POST", TXT2IMG_PATH, payload)
        images = data.get("images") if isinstance(data, dict) else None
        if not images:
            raise GenerationError("Response contains no images")

        try:
            raw = base64.b64decode(images[0], validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            raise GenerationError(f"Image payload is not valid base64: {e}") from e
        try:
            image = fs.decode_image_bytes(raw)
        except ValueError as e:
            raise GenerationError(str(e)) from e

        logger.info(f"Received {image.shape[1]}x{image.shape[0]} image")
        return image

    def generate_async(
        self,
        request: GenerationRequest,
        callback: Optional[Callable[[np.ndarray], None]] = None,
    ) -> Future:
        """Run generate() on a worker thread.

        The future resolves to the image (or raises GenerationError). The
        callback, if given, is called with the image on success only.
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="txt2img")
        future = self._executor.submit(self.generate, request)

        if callback is not None:
            def _done(f: Future) -> None:
                if f.cancelled():
                    return
                if f.exception() is not None:
                    logger.error(f"Image generation failed: {f.exception()}")
                    return
                callback(f.result())
            future.add_done_callback(_done)
        return future

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self.session.close()

"""Replicate API client: run a prediction, normalize its output, download the image."""
from __future__ import annotations

import base64
import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import unquote_to_bytes

import httpx

from . import models
from .config import api_base, api_token
from .errors import (
    DownloadFailed,
    GenerationFailed,
    ReplicateImagesError,
    UnrecognizedOutputShape,
)
from .schema import ModelInfo

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"succeeded", "failed", "canceled"}
URL_FIELDS = ("url", "image", "output", "uri")
DEFAULT_TIMEOUT = httpx.Timeout(120.0, connect=10.0)


@dataclass
class GeneratedImage:
    data: bytes
    url: str


class OutputShape(enum.Enum):
    """The output shapes we know how to turn into a single image reference."""
    URL = "url"
    LIST = "list"
    OBJECT = "object"
    UNRECOGNIZED = "unrecognized"


def classify_output(output: Any) -> OutputShape:
    if isinstance(output, str):
        return OutputShape.URL
    if isinstance(output, list):
        return OutputShape.LIST
    if isinstance(output, dict):
        return OutputShape.OBJECT
    return OutputShape.UNRECOGNIZED


def _from_url(output: str) -> str:
    if not output:
        raise UnrecognizedOutputShape("empty output string from model")
    return output


def _from_list(output: List[Any]) -> str:
    if not output:
        raise UnrecognizedOutputShape("empty output array from model")
    # First element is authoritative; it may itself be a URL or an object
    return extract_image_url(output[0])


def _from_object(output: Dict[str, Any]) -> str:
    for key in URL_FIELDS:
        val = output.get(key)
        if isinstance(val, str) and val:
            return val
    raise UnrecognizedOutputShape(f"no image URL found in output object: {output!r}")


def _unrecognized(output: Any) -> str:
    raise UnrecognizedOutputShape(f"unexpected output format {type(output).__name__}: {output!r}")


_SHAPE_HANDLERS: Dict[OutputShape, Callable[[Any], str]] = {
    OutputShape.URL: _from_url,
    OutputShape.LIST: _from_list,
    OutputShape.OBJECT: _from_object,
    OutputShape.UNRECOGNIZED: _unrecognized,
}


def extract_image_url(output: Any) -> str:
    """Reduce a prediction output to one image reference.

    Known formats:
      - "https://..."            direct reference
      - ["https://...", ...]     first element wins
      - {"url": "https://..."}   one of ``URL_FIELDS``
    """
    return _SHAPE_HANDLERS[classify_output(output)](output)


def decode_data_uri(uri: str) -> bytes:
    header, sep, body = uri.partition(",")
    if not sep:
        raise DownloadFailed("malformed data URI")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(body, validate=True)
        except ValueError as e:
            raise DownloadFailed(f"malformed base64 data URI: {e}") from e
    return unquote_to_bytes(body)


class ReplicateClient:
    """Thin wrapper around the Replicate HTTP API.

    ``transport`` lets tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        poll_interval: float = 1.0,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
    ):
        self.poll_interval = poll_interval
        self._api = httpx.Client(
            base_url=base_url or api_base(),
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
            timeout=timeout,
        )
        # Image hosts get no credentials
        self._download = httpx.Client(transport=transport, timeout=timeout, follow_redirects=True)

    @classmethod
    def from_env(cls, **kwargs) -> "ReplicateClient":
        return cls(api_token(), **kwargs)

    def close(self) -> None:
        self._api.close()
        self._download.close()

    def __enter__(self) -> "ReplicateClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def generate_image(self, model_id: str, prompt: str) -> GeneratedImage:
        """Run ``model_id`` on ``prompt`` and return the downloaded image bytes."""
        payload = models.build_input(model_id, prompt)
        if not models.is_supported(model_id):
            logger.debug("Model %s is not in the registry; no default inputs applied", model_id)
        start = time.time()
        prediction = self._run(model_id, payload)
        url = extract_image_url(prediction.get("output"))
        data = self.download(url)
        logger.info(
            "Generated %d bytes with %s in %.1fs from %s",
            len(data), model_id, time.time() - start, url[:80],
        )
        return GeneratedImage(data=data, url=url)

    def _run(self, model_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        ref, _, version = model_id.partition(":")
        owner, slash, name = ref.partition("/")
        if not (owner and slash and name):
            raise GenerationFailed(f"invalid model id {model_id!r}; expected owner/name[:version]")
        if version:
            path, body = "/predictions", {"version": version, "input": payload}
        else:
            path, body = f"/models/{owner}/{name}/predictions", {"input": payload}

        prediction = self._request("POST", path, json=body, headers={"Prefer": "wait"})
        while prediction.get("status") not in TERMINAL_STATUSES:
            get_url = (prediction.get("urls") or {}).get("get")
            if not get_url:
                raise GenerationFailed(f"prediction {prediction.get('id')} has no polling URL")
            time.sleep(self.poll_interval)
            prediction = self._request("GET", get_url)

        status = prediction["status"]
        if status != "succeeded":
            reason = prediction.get("error") or status
            raise GenerationFailed(f"prediction failed: {reason}")
        return prediction

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            resp = self._api.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise GenerationFailed(f"prediction failed: {e}") from e
        if resp.status_code >= 400:
            raise GenerationFailed(f"prediction failed: HTTP {resp.status_code}: {_detail(resp)}")
        try:
            return resp.json()
        except ValueError as e:
            raise GenerationFailed(f"prediction failed: invalid JSON response: {e}") from e

    def download(self, url: str) -> bytes:
        if url.startswith("data:"):
            return decode_data_uri(url)
        try:
            resp = self._download.get(url)
        except httpx.HTTPError as e:
            raise DownloadFailed(f"failed to download image: {e}") from e
        if resp.status_code != 200:
            raise DownloadFailed(f"download failed with status: {resp.status_code}")
        return resp.content

    def search_models(self, query: str) -> List[ModelInfo]:
        """Search public models; results come back in the API's order."""
        try:
            resp = self._api.request(
                "QUERY", "/models", content=query.encode("utf-8"),
                headers={"Content-Type": "text/plain"},
            )
        except httpx.HTTPError as e:
            raise ReplicateImagesError(f"search failed: {e}") from e
        if resp.status_code >= 400:
            raise ReplicateImagesError(f"search failed: HTTP {resp.status_code}: {_detail(resp)}")
        results = []
        for m in resp.json().get("results", []):
            results.append(ModelInfo(
                owner=m.get("owner", ""),
                name=m.get("name", ""),
                description=m.get("description"),
                run_count=m.get("run_count") or 0,
            ))
        return results


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return resp.text[:200]


__all__ = [
    "GeneratedImage",
    "OutputShape",
    "ReplicateClient",
    "classify_output",
    "decode_data_uri",
    "extract_image_url",
]

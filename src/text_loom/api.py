"""JSON-over-HTTP client for REST completion providers, with optional call logging."""

import hashlib
import json
import time
from pathlib import Path
from typing import Any

import requests
from loguru import logger

from text_loom.config import API_LOG_DIR
from text_loom.exceptions import ProviderError

DEFAULT_TIMEOUT = 120


class RestClient:
    """POST JSON to provider endpoints and return the decoded response."""

    def __init__(self, *, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.sess = requests.Session()
        self.timeout = timeout

    def close(self) -> None:
        self.sess.close()

    def post(self, url: str, body: dict[str, Any], *, headers: dict[str, str] | None = None) -> Any:
        """POST ``body`` as JSON.

        Raises:
            ProviderError: On a transport failure, a non-200 status or a
                response that is not JSON.
        """
        logger.debug(f"Making request: {url!r} {repr(body)[:32]}")
        try:
            r = self.sess.post(
                url,
                data=json.dumps(body),
                headers={"Content-Type": "application/json", **(headers or {})},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProviderError(None, str(e)) from e

        if r.status_code != 200:
            raise ProviderError(r.status_code, _error_message(r))
        try:
            return r.json()
        except ValueError as e:
            msg = f"Invalid JSON from {url!r}"
            raise ProviderError(r.status_code, msg) from e


def _error_message(r: requests.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        return r.text or f"status code {r.status_code}"
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if data.get("message"):
            return str(data["message"])
    return f"status code {r.status_code}"


class ApiCallLog:
    """Write each provider request and its result as a JSON file."""

    def __init__(self, directory: str | Path = API_LOG_DIR) -> None:
        self.directory = Path(directory)

    def record(self, request: dict[str, Any], result: dict[str, Any]) -> Path:
        params_str = json.dumps(request, sort_keys=True, separators=(",", ":"))
        digest = hashlib.sha1(params_str.encode("utf-8")).hexdigest()[:12]
        fname = self.directory / f"{int(time.time() * 1000)}-{digest}.json"

        self.directory.mkdir(parents=True, exist_ok=True)
        with open(fname, "w", encoding="utf-8") as f:
            json.dump({"request": request, "result": result}, f, indent=2)
        logger.debug(f"Logged API call to {str(fname)!r}")
        return fname

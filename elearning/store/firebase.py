"""
Realtime Database REST adapter (sync, requests-based).

Endpoints:
    GET/PUT/PATCH/DELETE {database_url}/{path}.json[?auth=<secret>]

Errors:
    Any transport error or non-2xx response is raised as StoreError carrying the
    HTTP status (when known). No retries; the caller decides.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping, Optional

import requests

from . import paths
from .ports import StoreError

_log = logging.getLogger("elearning.store")


class FirebaseTreeStore:
    """TreeStore over the Realtime Database REST API."""

    def __init__(
        self,
        database_url: str,
        *,
        secret: Optional[str] = None,
        session: requests.Session | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.database_url = database_url.rstrip("/")
        self.secret = secret
        self.session = session or requests.Session()
        self.timeout = timeout

    # --- REST helpers -----------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.database_url}/{paths.join(path)}.json"

    def _params(self) -> dict:
        return {"auth": self.secret} if self.secret else {}

    def _call(self, method: str, path: str, payload: Any = None) -> Any:
        kwargs: dict = {"params": self._params(), "timeout": self.timeout}
        if payload is not None:
            kwargs["json"] = payload
        try:
            resp = self.session.request(method, self._url(path), **kwargs)
        except requests.RequestException as exc:
            raise StoreError(f"{method} /{paths.join(path)} failed: {exc}") from exc
        _log.debug("%s /%s status=%s", method, paths.join(path), resp.status_code)
        try:
            resp.raise_for_status()
        except requests.HTTPError as exc:
            raise StoreError(
                f"{method} /{paths.join(path)} returned {resp.status_code}",
                status=resp.status_code,
            ) from exc
        if method == "GET":
            return resp.json()
        return None

    # --- TreeStore --------------------------------------------------------

    def read(self, path: str) -> Any:
        return self._call("GET", path)

    def write(self, path: str, value: Any) -> None:
        if value is None or (isinstance(value, (dict, list)) and not value):
            self.delete(path)
            return
        self._call("PUT", path, value)

    def merge(self, path: str, partial: Mapping[str, Any]) -> None:
        if not partial:
            return
        self._call("PATCH", path, dict(partial))

    def delete(self, path: str) -> None:
        self._call("DELETE", path)

    def generate_id(self) -> str:
        return uuid.uuid4().hex


__all__ = ["FirebaseTreeStore"]

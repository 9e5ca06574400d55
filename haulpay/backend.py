# -*- coding: utf-8 -*-
"""
HTTP transport to the accounting backend.

Every call is one round trip: no retries, no local caching. Non-2xx answers
are turned into the exceptions from ``haulpay.errors`` with the most useful
message the response body offers.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

import httpx
from flask import current_app

from . import session as op_session
from .errors import BackendError, ConflictError, NotLoggedIn, Unauthorized

log = logging.getLogger(__name__)

# .NET emits 7 fractional digits; fromisoformat on 3.10 takes only 3 or 6
_FRACTION = re.compile(r"\.(\d+)")


def parse_timestamp(raw: Any) -> datetime:
    """ISO-8601 timestamp from the backend. Raises ``ValueError`` when unreadable."""
    s = str(raw).strip().replace("Z", "+00:00")
    s = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), s, count=1)
    return datetime.fromisoformat(s)


def _error_message(resp: httpx.Response, fallback: str) -> str:
    text = (resp.text or "").strip()
    ctype = resp.headers.get("content-type", "")
    if "json" in ctype:
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, str) and body.strip():
            return body.strip()
        if isinstance(body, dict):
            for key in ("message", "Message", "title", "detail", "error"):
                v = body.get(key)
                if isinstance(v, str) and v.strip():
                    return v.strip()
    if text:
        return text
    return f"{fallback} ({resp.status_code})"


class BackendClient:
    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._http = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "BackendClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # --- core ---
    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        auth: bool = True,
        fallback: str = "Request failed",
    ) -> Any:
        headers = {}
        if auth:
            if not self.token:
                raise NotLoggedIn()
            headers["Authorization"] = f"Bearer {self.token}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            resp = self._http.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            log.warning("%s %s failed: %s", method, path, e)
            raise BackendError(f"{fallback}: {e}") from e

        log.debug("%s %s -> %s", method, path, resp.status_code)
        if resp.status_code == 401:
            raise Unauthorized(_error_message(resp, "Session expired" if auth else fallback), 401)
        if resp.status_code == 409:
            raise ConflictError(_error_message(resp, fallback), 409)
        if resp.is_error:
            msg = _error_message(resp, fallback)
            log.warning("%s %s -> %s: %s", method, path, resp.status_code, msg)
            raise BackendError(msg, resp.status_code)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return resp.text

    def get(self, path: str, **kw) -> Any:
        return self.request("GET", path, **kw)

    def post(self, path: str, **kw) -> Any:
        return self.request("POST", path, **kw)

    def put(self, path: str, **kw) -> Any:
        return self.request("PUT", path, **kw)

    def delete(self, path: str, **kw) -> Any:
        return self.request("DELETE", path, **kw)

    # --- account ---
    def login(self, username: str, password: str) -> dict[str, Any]:
        data = self.post(
            "/account/login",
            json={"username": username, "password": password},
            auth=False,
            fallback="Invalid username or password",
        )
        return data if isinstance(data, dict) else {}


def client_for(token: str | None) -> BackendClient:
    cfg = current_app.config
    return BackendClient(
        cfg["API_BASE_URL"],
        token=token,
        timeout=cfg.get("API_TIMEOUT", 30.0),
        transport=cfg.get("BACKEND_TRANSPORT"),
    )


def session_client() -> BackendClient:
    """Client bound to the signed-in operator; raises ``NotLoggedIn`` otherwise."""
    return client_for(op_session.require().token)

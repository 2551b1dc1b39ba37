"""Shared test doubles."""
from __future__ import annotations

import json

import requests

from crypto.encoding import b64url_decode


class FakeClock:
    """Manually advanced clock, seconds since the epoch."""

    def __init__(self, start: float = 1_760_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(self, status_code: int = 200, body=None, text: str = ""):
        self.status_code = status_code
        self._body = body
        self.text = text

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error")


def peek_payload(token: str) -> dict:
    """Payload of a compact JWS without checking the signature."""
    return json.loads(b64url_decode(token.split(".")[1]))

from collections import deque
from typing import Any, Deque, List, Optional, Union

import ecdsa
import httpx

from finaccess.config import RetryPolicy
from finaccess.core.keys import PrivateKey

FIXED_TIME = 1609459200
NO_WAIT = RetryPolicy(attempts=4, initial=0, max_wait=0, jitter=0)


def key_from_exponent(exponent: int) -> PrivateKey:
    return PrivateKey(ecdsa.SigningKey.from_secret_exponent(exponent, curve=ecdsa.SECP256k1))


class FakeApi:
    """Scripted stand-in for the remote API, recording every request it receives."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self._replies: Deque[Union[httpx.Response, Exception]] = deque()

    def reply(self, status_code: int = 200, json: Any = None, content: Optional[bytes] = None) -> "FakeApi":
        if content is not None:
            self._replies.append(httpx.Response(status_code, content=content))
        else:
            self._replies.append(httpx.Response(status_code, json=json if json is not None else {}))
        return self

    def fail(self, exc: Exception) -> "FakeApi":
        self._replies.append(exc)
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._replies:
            raise AssertionError(f"unexpected request {request.method} {request.url}")
        reply = self._replies.popleft()
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    @property
    def pending(self) -> int:
        return len(self._replies)


def log_json(log_id: str, log_type: str = "created") -> dict:
    return {
        "id": log_id,
        "type": log_type,
        "created": "2021-01-01T12:00:00+00:00",
        "errors": [],
        "request": {"id": f"req-{log_id}", "amount": 1000, "status": "created"},
    }


def logs_page(ids, cursor=None) -> dict:
    return {"logs": [log_json(log_id) for log_id in ids], "cursor": cursor}

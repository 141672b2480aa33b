"""
Builds the canonical signing input for a request and attaches the access headers.

The server recomputes the same message independently, so the layout below is
fixed::

    {access id}\\n{unix timestamp}\\n{METHOD}\\n{path with query}\\n{body}

An absent body is encoded as the empty string, so a GET message ends with a
trailing newline.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generator, Optional, Union

import httpx

from .signing import sign
from .user import User

logger = logging.getLogger(__name__)

ACCESS_ID_HEADER = "Access-Id"
ACCESS_TIME_HEADER = "Access-Time"
ACCESS_SIGNATURE_HEADER = "Access-Signature"

Clock = Callable[[], float]


def canonical_message(
    identity: str,
    timestamp: int,
    method: str,
    path: str,
    body: Union[str, bytes, None] = None,
) -> str:
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    return "\n".join([identity, str(int(timestamp)), method.upper(), path, body or ""])


@dataclass(frozen=True)
class SignedRequest:
    identity: str
    timestamp: int
    message: str
    signature: str

    @property
    def headers(self) -> dict:
        return {
            ACCESS_ID_HEADER: self.identity,
            ACCESS_TIME_HEADER: str(self.timestamp),
            ACCESS_SIGNATURE_HEADER: self.signature,
        }


def sign_request(
    user: User,
    method: str,
    path: str,
    body: Union[str, bytes, None] = None,
    timestamp: Optional[int] = None,
) -> SignedRequest:
    if timestamp is None:
        timestamp = int(time.time())
    message = canonical_message(user.access_id, timestamp, method, path, body)
    return SignedRequest(
        identity=user.access_id,
        timestamp=int(timestamp),
        message=message,
        signature=sign(user.private_key, message),
    )


def authenticate(request: httpx.Request, user: User, timestamp: Optional[int] = None) -> SignedRequest:
    """Sign a prepared request in place. Does not send it."""
    path = request.url.raw_path.decode("ascii")
    signed = sign_request(user, request.method, path, request.content, timestamp)
    request.headers.update(signed.headers)
    logger.debug(
        "Signed %s %s as %s at %s (signature length %d)",
        request.method,
        path,
        signed.identity,
        signed.timestamp,
        len(signed.signature),
    )
    return signed


class RequestAuthenticator(httpx.Auth):
    """httpx auth flow that signs every outgoing request for one user."""

    requires_request_body = True

    def __init__(self, user: User, clock: Clock = time.time) -> None:
        self.user = user
        self._clock = clock

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        authenticate(request, self.user, int(self._clock()))
        yield request

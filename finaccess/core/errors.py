"""Error taxonomy and the response classifier shared by every API call."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

INVALID_SIGNATURE_CODES = {"invalidSignature", "invalidAccessSignature", "invalidAccessTime"}
NOT_FOUND_CODES = {"notFound", "invalidId"}


class FieldError(BaseModel):
    """A single error entry reported by the API, optionally bound to a field."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str = ""
    field: Optional[str] = None


class FinAccessError(Exception):
    """Base class for every error raised by this library."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False) and name not in ("__traceback__", "__cause__", "__context__", "__suppress_context__", "__notes__"):
            raise AttributeError(f"{type(self).__name__} is immutable")
        super().__setattr__(name, value)

    def _freeze(self) -> None:
        object.__setattr__(self, "_frozen", True)


class CryptoError(FinAccessError):
    """Local cryptographic input is structurally invalid. Never retried."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self._freeze()


class InvalidKeyError(CryptoError):
    pass


class MalformedSignatureError(CryptoError):
    pass


class ApiError(FinAccessError):
    """An error classified from an API response or a failed transport call."""

    kind = "api"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        errors: Optional[List[FieldError]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.errors = tuple(errors or ())
        self._freeze()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status_code={self.status_code!r}, message={self.message!r}, errors={len(self.errors)})"


class InputError(ApiError):
    kind = "input"


class InvalidSignatureError(ApiError):
    kind = "invalid_signature"


class NotFoundError(ApiError):
    kind = "not_found"


class InternalServerError(ApiError):
    kind = "internal_server"


class TransportError(ApiError):
    """
    Fallback for unparseable failures; ``status_code`` is None for network faults.

    ``unsent`` is True only when the connection was never established, so the
    request provably did not reach the server.
    """

    kind = "transport"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        raw: Optional[str] = None,
        unsent: bool = False,
    ) -> None:
        object.__setattr__(self, "raw", raw)
        object.__setattr__(self, "unsent", unsent)
        super().__init__(message, status_code=status_code)


def _coerce_field_error(item: Any) -> Optional[FieldError]:
    if not isinstance(item, dict) or not item.get("code"):
        return None
    return FieldError(
        code=str(item["code"]),
        message=str(item.get("message") or ""),
        field=item.get("field"),
    )


def parse_error_payload(body: Any) -> Optional[List[FieldError]]:
    """
    Extract the error entries from an API error body.

    Accepts ``{"errors": [...]}``, a bare list of ``{code, message, field?}``
    objects, or a single ``{code, message}`` object. Returns None when the body
    does not look like an error payload at all.
    """
    if isinstance(body, (bytes, str)):
        try:
            body = json.loads(body)
        except ValueError:
            return None

    if isinstance(body, dict):
        if isinstance(body.get("errors"), list):
            items = body["errors"]
        elif isinstance(body.get("error"), dict):
            items = [body["error"]]
        elif "code" in body:
            items = [body]
        else:
            return None
    elif isinstance(body, list):
        items = body
    else:
        return None

    errors = [_coerce_field_error(item) for item in items]
    if not errors or any(error is None for error in errors):
        return None
    return errors


def _summary(errors: List[FieldError]) -> str:
    return "; ".join(
        f"{error.code}: {error.message}" + (f" (field {error.field})" if error.field else "")
        for error in errors
    )


def classify_response(status_code: int, body: Any) -> ApiError:
    """Map a failed HTTP status and body into exactly one error kind."""
    if status_code >= 500:
        errors = parse_error_payload(body) or []
        return InternalServerError(
            _summary(errors) if errors else f"Server returned HTTP {status_code}",
            status_code=status_code,
            errors=errors,
        )

    errors = parse_error_payload(body)
    if errors is None:
        raw = body.decode("utf-8", "replace") if isinstance(body, bytes) else (body if isinstance(body, str) else None)
        return TransportError(f"Unexpected HTTP {status_code} response", status_code=status_code, raw=raw)

    codes = {error.code for error in errors}
    message = _summary(errors)
    if status_code == 401 or codes & INVALID_SIGNATURE_CODES:
        return InvalidSignatureError(message, status_code=status_code, errors=errors)
    if status_code == 404 or codes & NOT_FOUND_CODES:
        return NotFoundError(message, status_code=status_code, errors=errors)
    return InputError(message, status_code=status_code, errors=errors)


def classify_exception(exc: httpx.TransportError) -> TransportError:
    unsent = isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))
    return TransportError(f"{type(exc).__name__}: {exc}", unsent=unsent)


def raise_for_response(response: httpx.Response) -> None:
    """Raise the classified error for a non-2xx response."""
    if response.is_success:
        return
    error = classify_response(response.status_code, response.content)
    logger.debug("Classified HTTP %s from %s as %s", response.status_code, response.request.url, error.kind)
    raise error

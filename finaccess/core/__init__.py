"""Core package: key material, signing, error taxonomy and the resource engine."""

from .authenticator import RequestAuthenticator, SignedRequest, authenticate, canonical_message, sign_request
from .errors import (
    ApiError,
    CryptoError,
    FieldError,
    FinAccessError,
    InputError,
    InternalServerError,
    InvalidKeyError,
    InvalidSignatureError,
    MalformedSignatureError,
    NotFoundError,
    TransportError,
    classify_response,
)
from .keys import PrivateKey, PublicKey, PublicKeyCache, PublicKeySet
from .query import Query
from .rest import AccessClient, Page, Resource
from .result import Result
from .signing import sign, verify
from .user import Environment, Organization, Project, User

__all__ = [
    "AccessClient",
    "ApiError",
    "CryptoError",
    "Environment",
    "FieldError",
    "FinAccessError",
    "InputError",
    "InternalServerError",
    "InvalidKeyError",
    "InvalidSignatureError",
    "MalformedSignatureError",
    "NotFoundError",
    "Organization",
    "Page",
    "PrivateKey",
    "Project",
    "PublicKey",
    "PublicKeyCache",
    "PublicKeySet",
    "Query",
    "RequestAuthenticator",
    "Resource",
    "Result",
    "SignedRequest",
    "TransportError",
    "User",
    "authenticate",
    "canonical_message",
    "classify_response",
    "sign",
    "sign_request",
    "verify",
]

"""
Generic resource access: get-by-id, single pages and lazy multi-page streams.

Every call goes through ``AccessClient.request``, the one retrying primitive.
Failures are classified there once; everything above only sees ``ApiError``
subclasses. Each operation comes in two forms: ``*_result`` returns a
``Result`` and is the primitive, the plain form unwraps it and raises.

A ``Result`` only carries classified ``ApiError``s. Arguments that could never
form a valid request (a blank id, an invalid ``Query``) are programming errors
and raise ``ValueError`` from both forms before anything is sent, the same way
a bad key raises ``InvalidKeyError``.
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Generic,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
    TypeVar,
)
from urllib.parse import quote

import httpx
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from ..config import RetryPolicy, Settings, settings as default_settings
from .authenticator import Clock, RequestAuthenticator
from .errors import ApiError, InternalServerError, TransportError, classify_exception, raise_for_response
from .keys import PublicKeyCache, PublicKeySet
from .query import MAX_PAGE_SIZE, Query
from .result import Result
from .user import User

logger = logging.getLogger(__name__)

T = TypeVar("T")

Decoder = Callable[[Dict[str, Any]], T]


IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})


def _is_retryable(exc: BaseException) -> bool:
    """Retry only on network faults and HTTP 5xx."""
    if isinstance(exc, InternalServerError):
        return True
    return isinstance(exc, TransportError) and exc.status_code is None


def _was_never_sent(exc: BaseException) -> bool:
    return isinstance(exc, TransportError) and exc.unsent


def _retry_predicate(method: str) -> Callable[[BaseException], bool]:
    """
    Pick the retry predicate for ``method``.

    A non-idempotent request (POST, PATCH) that timed out or got a 5xx may
    already have been applied, so it is only re-sent when the connection
    itself failed.
    """
    if method.upper() in IDEMPOTENT_METHODS:
        return _is_retryable
    return _was_never_sent


def _kebab(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "-", name).lower()


def _plural(word: str) -> str:
    if word.endswith("y") and word[-2:-1] not in "aeiou":
        return word[:-1] + "ies"
    if word.endswith("s"):
        return word
    return word + "s"


@dataclass(frozen=True)
class Resource(Generic[T]):
    """
    What a resource wrapper hands to the engine: its API name and a decoder.

    ``PixRequestLog`` maps to endpoint ``pix-request/log`` and JSON keys
    ``log`` / ``logs``. Any of the three may be overridden.
    """

    name: str
    decoder: Decoder
    endpoint: str = ""
    singular: str = ""
    plural: str = ""

    def __post_init__(self) -> None:
        kebab = _kebab(self.name)
        if not self.endpoint:
            object.__setattr__(self, "endpoint", re.sub(r"-(log|attempt)$", r"/\1", kebab))
        if not self.singular:
            object.__setattr__(self, "singular", kebab.split("-")[-1])
        if not self.plural:
            object.__setattr__(self, "plural", _plural(self.singular))

    def decode(self, raw: Any) -> T:
        if not isinstance(raw, dict):
            raise TransportError(f"Expected a JSON object for {self.name}, got {type(raw).__name__}", status_code=200)
        try:
            return self.decoder(raw)
        except ValueError as exc:
            raise TransportError(f"Could not decode {self.name}: {exc}", status_code=200) from exc

    def decode_many(self, raws: Any) -> Tuple[T, ...]:
        if raws is None:
            return ()
        if not isinstance(raws, list):
            raise TransportError(f"Expected a JSON list of {self.plural}, got {type(raws).__name__}", status_code=200)
        return tuple(self.decode(raw) for raw in raws)


@dataclass(frozen=True)
class Page(Generic[T]):
    """One server page: entities in server order plus the opaque next cursor."""

    items: Tuple[T, ...] = ()
    cursor: Optional[str] = None

    @property
    def is_last(self) -> bool:
        return not self.cursor

    def __iter__(self) -> Iterator[Any]:
        return iter((self.items, self.cursor))


def _as_query(query: Optional[Query], options: Dict[str, Any]) -> Query:
    if query is None:
        return Query(**options)
    if options:
        return Query(**{**query.as_options(), **options})
    return query


def _to_json(entity: Any) -> Any:
    if isinstance(entity, BaseModel):
        return entity.model_dump(mode="json", by_alias=True, exclude_none=True)
    return entity


def _expect(payload: Dict[str, Any], key: str) -> Any:
    if key not in payload:
        raise TransportError(f"Response is missing '{key}'", status_code=200)
    return payload[key]


class AccessClient:
    """
    Authenticated client for one identity.

    Holds the HTTP connection pool, the request signer and the service public
    key cache. Independent traversals share nothing but that cache.
    """

    def __init__(
        self,
        user: User,
        settings: Optional[Settings] = None,
        *,
        retry: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Clock = time.time,
    ) -> None:
        if not isinstance(user, User):
            raise TypeError("user must be a Project or Organization credential")
        self.user = user
        self.settings = settings or default_settings
        self.retry_policy = retry or self.settings.retry_policy()
        self._clock = clock
        self._auth = RequestAuthenticator(user, clock)
        self._public_keys = PublicKeyCache()
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.timeout, connect=self.settings.connect_timeout),
            transport=transport,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": self.settings.user_agent,
            },
        )

    async def __aenter__(self) -> "AccessClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Dispose the underlying HTTP client."""
        await self._client.aclose()

    def __repr__(self) -> str:
        return f"AccessClient(user={self.user.access_id!r}, environment={self.user.environment.value!r})"

    # -- call primitive ----------------------------------------------------

    def _retrying(self, method: str) -> AsyncRetrying:
        policy = self.retry_policy
        return AsyncRetrying(
            stop=stop_after_attempt(policy.attempts),
            wait=wait_exponential(multiplier=policy.initial, max=policy.max_wait) + wait_random(0, policy.jitter),
            retry=retry_if_exception(_retry_predicate(method)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def _url(self, path: str, user: User) -> str:
        return f"{self.settings.base_url(user.environment)}/{path.lstrip('/')}"

    async def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]],
        json: Any,
        auth: httpx.Auth,
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url, params=params, json=json, auth=auth)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed at transport level: %s", method, url, exc)
            raise classify_exception(exc) from exc

        raise_for_response(response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError(
                "Response body is not valid JSON",
                status_code=response.status_code,
                raw=response.text,
            ) from exc
        if not isinstance(payload, dict):
            raise TransportError("Response body is not a JSON object", status_code=response.status_code, raw=response.text)
        return payload

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        user: Optional[User] = None,
    ) -> Dict[str, Any]:
        """Send one signed request, retrying transient failures, and return the JSON body."""
        user = user or self.user
        auth = self._auth if user is self.user else RequestAuthenticator(user, self._clock)
        url = self._url(path, user)
        method = method.upper()
        try:
            return await self._retrying(method)(self._send, method, url, params, json, auth)
        except ApiError as error:
            if _retry_predicate(method)(error):
                logger.error(
                    "Giving up on %s %s after %d attempts: %s",
                    method.upper(),
                    url,
                    self.retry_policy.attempts,
                    error.message,
                )
            raise

    # -- get by id -----------------------------------------------------------

    async def get_id_result(self, resource: Resource[T], id: str, *, user: Optional[User] = None) -> Result[T]:
        if not id or not str(id).strip():
            raise ValueError("id must be a non-empty string")
        try:
            payload = await self.request("GET", f"{resource.endpoint}/{quote(str(id), safe='')}", user=user)
            return Result.success(resource.decode(_expect(payload, resource.singular)))
        except ApiError as error:
            return Result.failure(error)

    async def get_id(self, resource: Resource[T], id: str, *, user: Optional[User] = None) -> T:
        return (await self.get_id_result(resource, id, user=user)).unwrap()

    # -- single page ---------------------------------------------------------

    async def _fetch_page(self, resource: Resource[T], query: Query, page_size: int) -> Page[T]:
        logger.info("Fetching %s page (limit=%d, cursor=%s)", resource.name, page_size, "set" if query.cursor else "none")
        payload = await self.request("GET", resource.endpoint, params=query.to_params(page_size), user=query.user)
        items = resource.decode_many(payload.get(resource.plural))
        cursor = payload.get("cursor") or None
        return Page(items=items, cursor=cursor)

    async def get_page_result(self, resource: Resource[T], query: Optional[Query] = None, **options: Any) -> Result[Page[T]]:
        """One bounded fetch. ``query.limit`` is the page size, capped at 100."""
        query = _as_query(query, options)
        page_size = min(query.limit or self.settings.page_size, MAX_PAGE_SIZE)
        try:
            return Result.success(await self._fetch_page(resource, query, page_size))
        except ApiError as error:
            return Result.failure(error)

    async def get_page(self, resource: Resource[T], query: Optional[Query] = None, **options: Any) -> Page[T]:
        return (await self.get_page_result(resource, query, **options)).unwrap()

    # -- lazy traversal ------------------------------------------------------

    async def stream_result(
        self, resource: Resource[T], query: Optional[Query] = None, **options: Any
    ) -> AsyncIterator[Result[T]]:
        """
        Lazily walk every page of ``resource``.

        Pages are requested only when the consumer has taken every entity of the
        previous one. The walk ends when the server returns no cursor or when
        ``query.limit`` entities have been yielded, whichever comes first; a
        leftover cursor is dropped. An error is yielded once and ends the walk.
        """
        query = _as_query(query, options).with_cursor(None)
        remaining = query.limit
        cursor: Optional[str] = None
        fetched = 0

        while True:
            page_size = self.settings.page_size if remaining is None else min(remaining, self.settings.page_size)
            try:
                page = await self._fetch_page(resource, query.with_cursor(cursor), page_size)
            except ApiError as error:
                yield Result.failure(error)
                return
            fetched += 1

            for entity in page.items:
                if remaining is not None:
                    if remaining <= 0:
                        break
                    remaining -= 1
                yield Result.success(entity)

            if page.is_last:
                logger.info("%s stream exhausted after %d page(s)", resource.name, fetched)
                return
            if remaining is not None and remaining <= 0:
                logger.info("%s stream reached its limit after %d page(s)", resource.name, fetched)
                return
            if page.cursor == cursor:
                logger.warning("%s returned the same cursor twice; stopping stream", resource.name)
                return
            cursor = page.cursor

    async def stream(self, resource: Resource[T], query: Optional[Query] = None, **options: Any) -> AsyncIterator[T]:
        async for result in self.stream_result(resource, query, **options):
            yield result.unwrap()

    # -- create / delete -----------------------------------------------------

    async def post_result(
        self, resource: Resource[T], entities: Iterable[Any], *, user: Optional[User] = None
    ) -> Result[List[T]]:
        body = {resource.plural: [_to_json(entity) for entity in entities]}
        try:
            payload = await self.request("POST", resource.endpoint, json=body, user=user)
            return Result.success(list(resource.decode_many(_expect(payload, resource.plural))))
        except ApiError as error:
            return Result.failure(error)

    async def post(self, resource: Resource[T], entities: Iterable[Any], *, user: Optional[User] = None) -> List[T]:
        return (await self.post_result(resource, entities, user=user)).unwrap()

    async def delete_id_result(self, resource: Resource[T], id: str, *, user: Optional[User] = None) -> Result[T]:
        if not id or not str(id).strip():
            raise ValueError("id must be a non-empty string")
        try:
            payload = await self.request("DELETE", f"{resource.endpoint}/{quote(str(id), safe='')}", user=user)
            return Result.success(resource.decode(_expect(payload, resource.singular)))
        except ApiError as error:
            return Result.failure(error)

    async def delete_id(self, resource: Resource[T], id: str, *, user: Optional[User] = None) -> T:
        return (await self.delete_id_result(resource, id, user=user)).unwrap()

    # -- service public keys -------------------------------------------------

    async def fetch_public_keys(self) -> PublicKeySet:
        payload = await self.request("GET", "public-key", params={"limit": self.settings.public_key_limit})
        records = payload.get("publicKeys") or []
        keys = PublicKeySet.from_pems(record["content"] for record in records if isinstance(record, dict) and record.get("content"))
        if not keys:
            raise TransportError("public-key endpoint did not return any keys", status_code=200)
        return keys

    async def public_keys(self) -> PublicKeySet:
        return await self._public_keys.get(self.fetch_public_keys)

    async def refresh_public_keys(self) -> PublicKeySet:
        logger.info("Refreshing service public keys")
        return await self._public_keys.refresh(self.fetch_public_keys)

    def invalidate_public_keys(self) -> None:
        self._public_keys.invalidate()


_default_client: Optional[AccessClient] = None


def set_default_client(client: Optional[AccessClient]) -> None:
    global _default_client
    _default_client = client


def default_client() -> AccessClient:
    if _default_client is None:
        raise RuntimeError("No default client configured; call finaccess.init(user) or pass client=...")
    return _default_client


def resolve_client(client: Optional[AccessClient]) -> AccessClient:
    return client if client is not None else default_client()

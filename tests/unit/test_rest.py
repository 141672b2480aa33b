"""Resource access engine: get-by-id, paging, lazy streams, retry and classification."""
import asyncio
import warnings

import httpx
import pytest

from finaccess.config import RetryPolicy
from finaccess.core.authenticator import ACCESS_ID_HEADER, ACCESS_SIGNATURE_HEADER, ACCESS_TIME_HEADER, canonical_message
from finaccess.core.data_models import PixRequestLog
from finaccess.core.errors import InputError, InternalServerError, InvalidSignatureError, NotFoundError, TransportError
from finaccess.core.query import Query
from finaccess.core.rest import AccessClient, Page, Resource
from finaccess.core.signing import verify
from finaccess.resources import pix_request_log

from tests.helpers import FIXED_TIME, NO_WAIT, log_json, logs_page

LOGS = pix_request_log.resource


async def collect(iterator):
    return [item async for item in iterator]


class TestResource:
    def test_names_derived_from_camel_case(self):
        assert (LOGS.endpoint, LOGS.singular, LOGS.plural) == ("pix-request/log", "log", "logs")

    def test_plain_resource(self):
        resource = Resource("PixRequest", dict)
        assert (resource.endpoint, resource.singular, resource.plural) == ("pix-request", "request", "requests")

    def test_overrides(self):
        resource = Resource("PixKey", dict, endpoint="pix-key", plural="keys")
        assert resource.plural == "keys"


class TestGetId:
    @pytest.mark.asyncio
    async def test_decodes_entity(self, api, make_client):
        api.reply(json={"log": log_json("123")})
        async with make_client() as client:
            log = await client.get_id(LOGS, "123")

        assert isinstance(log, PixRequestLog)
        assert log.id == "123"
        assert log.request.id == "req-123"
        request = api.requests[0]
        assert request.method == "GET"
        assert str(request.url) == "https://sandbox.api.test/v2/pix-request/log/123"

    @pytest.mark.asyncio
    async def test_request_is_signed(self, api, make_client, project):
        api.reply(json={"log": log_json("1")})
        async with make_client() as client:
            await client.get_id(LOGS, "1")

        request = api.requests[0]
        assert request.headers[ACCESS_ID_HEADER] == project.access_id
        assert request.headers[ACCESS_TIME_HEADER] == str(FIXED_TIME)
        message = canonical_message(project.access_id, FIXED_TIME, "GET", "/v2/pix-request/log/1", "")
        assert verify([project.private_key.public_key()], message, request.headers[ACCESS_SIGNATURE_HEADER])

    @pytest.mark.asyncio
    async def test_not_found(self, api, make_client):
        api.reply(404, json={"errors": [{"code": "invalidPixRequestLogId", "message": "not found"}]})
        async with make_client() as client:
            result = await client.get_id_result(LOGS, "999")
            assert not result.ok
            assert isinstance(result.error, NotFoundError)

            api.reply(404, json={"errors": [{"code": "notFound", "message": "not found"}]})
            with pytest.raises(NotFoundError):
                await client.get_id(LOGS, "999")
        assert len(api.requests) == 2

    @pytest.mark.asyncio
    async def test_rejected_signature_is_not_retried(self, api, make_client):
        api.reply(400, json={"errors": [{"code": "invalidSignature", "message": "bad"}]})
        async with make_client() as client:
            with pytest.raises(InvalidSignatureError):
                await client.get_id(LOGS, "1")
        assert len(api.requests) == 1

    @pytest.mark.asyncio
    async def test_empty_id_rejected_locally(self, api, make_client):
        async with make_client() as client:
            with pytest.raises(ValueError):
                await client.get_id(LOGS, "")
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_blank_id_raises_from_result_form_too(self, api, make_client):
        async with make_client() as client:
            with pytest.raises(ValueError, match="non-empty"):
                await client.get_id_result(LOGS, "  ")
            with pytest.raises(ValueError, match="non-empty"):
                await client.delete_id_result(LOGS, "")
            with pytest.raises(ValueError):
                await client.get_page_result(LOGS, limit=0)
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_missing_envelope_is_transport_error(self, api, make_client):
        api.reply(json={"something": {}})
        async with make_client() as client:
            with pytest.raises(TransportError):
                await client.get_id(LOGS, "1")


class TestGetPage:
    @pytest.mark.asyncio
    async def test_page_passes_cursor_verbatim_and_keeps_order(self, api, make_client):
        api.reply(json=logs_page(["3", "1", "2"], cursor="next/+=="))
        async with make_client() as client:
            page = await client.get_page(LOGS, Query(limit=3, cursor="prev/+=="))

        assert [log.id for log in page.items] == ["3", "1", "2"]
        assert page.cursor == "next/+=="
        params = api.requests[0].url.params
        assert params["cursor"] == "prev/+=="
        assert params["limit"] == "3"

    @pytest.mark.asyncio
    async def test_page_unpacks_to_items_and_cursor(self, api, make_client):
        api.reply(json=logs_page(["1"], cursor=""))
        async with make_client() as client:
            items, cursor = await client.get_page(LOGS)

        assert len(items) == 1
        assert cursor is None
        assert api.requests[0].url.params["limit"] == "100"

    @pytest.mark.asyncio
    async def test_page_limit_capped_at_100(self, api, make_client):
        api.reply(json=logs_page([]))
        async with make_client() as client:
            page = await client.get_page(LOGS, limit=500)

        assert page == Page(items=(), cursor=None)
        assert api.requests[0].url.params["limit"] == "100"

    @pytest.mark.asyncio
    async def test_page_result_form_carries_error(self, api, make_client):
        api.reply(400, json=[{"code": "invalidField", "message": "bad date", "field": "after"}])
        async with make_client() as client:
            result = await client.get_page_result(LOGS, Query(after="2020-01-01"))

        assert isinstance(result.error, InputError)
        assert result.errors[0].field == "after"
        with pytest.raises(InputError):
            result.unwrap()


class TestStream:
    @pytest.mark.asyncio
    async def test_limit_spans_pages_without_extra_fetch(self, api, make_client):
        api.reply(json=logs_page(["1", "2"], cursor="c1"))
        api.reply(json=logs_page(["3", "4"], cursor="c2"))
        api.reply(json=logs_page(["5", "6"], cursor="c3"))
        async with make_client() as client:
            logs = await collect(client.stream(LOGS, limit=5))

        assert [log.id for log in logs] == ["1", "2", "3", "4", "5"]
        assert len(api.requests) == 3
        assert [r.url.params["limit"] for r in api.requests] == ["5", "3", "1"]
        assert [r.url.params.get("cursor") for r in api.requests] == [None, "c1", "c2"]

    @pytest.mark.asyncio
    async def test_stops_when_cursor_is_exhausted(self, api, make_client):
        api.reply(json=logs_page(["1", "2"], cursor="c1"))
        api.reply(json=logs_page(["3", "4"], cursor=""))
        async with make_client() as client:
            logs = await collect(client.stream(LOGS))

        assert [log.id for log in logs] == ["1", "2", "3", "4"]
        assert len(api.requests) == 2

    @pytest.mark.asyncio
    async def test_absent_cursor_also_ends(self, api, make_client):
        api.reply(json={"logs": [log_json("1")]})
        async with make_client() as client:
            logs = await collect(client.stream(LOGS))
        assert len(logs) == 1

    @pytest.mark.asyncio
    async def test_page_size_shrinks_to_limit(self, api, make_client, test_settings):
        test_settings.page_size = 50
        api.reply(json=logs_page(["1", "2"], cursor="c1"))
        async with make_client() as client:
            await collect(client.stream(LOGS, limit=2))
        assert api.requests[0].url.params["limit"] == "2"
        assert len(api.requests) == 1

    @pytest.mark.asyncio
    async def test_configured_page_size_used_when_unbounded(self, api, make_client, test_settings):
        test_settings.page_size = 50
        api.reply(json=logs_page(["1"]))
        async with make_client() as client:
            await collect(client.stream(LOGS))
        assert api.requests[0].url.params["limit"] == "50"

    @pytest.mark.asyncio
    async def test_is_lazy_and_stops_when_consumer_stops(self, api, make_client):
        api.reply(json=logs_page(["1", "2"], cursor="c1"))
        api.reply(json=logs_page(["3", "4"], cursor="c2"))
        async with make_client() as client:
            stream = client.stream(LOGS)
            assert api.requests == []

            first = await stream.__anext__()
            assert first.id == "1"
            assert len(api.requests) == 1

            second = await stream.__anext__()
            assert second.id == "2"
            assert len(api.requests) == 1

            await stream.aclose()

        assert len(api.requests) == 1
        assert api.pending == 1

    @pytest.mark.asyncio
    async def test_break_does_not_fetch_more(self, api, make_client):
        api.reply(json=logs_page(["1", "2"], cursor="c1"))
        async with make_client() as client:
            async for log in client.stream(LOGS):
                if log.id == "2":
                    break
        assert len(api.requests) == 1

    @pytest.mark.asyncio
    async def test_stream_ignores_query_cursor(self, api, make_client):
        api.reply(json=logs_page(["1"]))
        async with make_client() as client:
            await collect(client.stream(LOGS, Query(cursor="stale")))
        assert "cursor" not in api.requests[0].url.params

    @pytest.mark.asyncio
    async def test_repeated_cursor_ends_stream(self, api, make_client):
        api.reply(json=logs_page(["1"], cursor="same"))
        api.reply(json=logs_page(["2"], cursor="same"))
        async with make_client() as client:
            logs = await collect(client.stream(LOGS))
        assert [log.id for log in logs] == ["1", "2"]
        assert len(api.requests) == 2

    @pytest.mark.asyncio
    async def test_result_form_yields_error_once_then_ends(self, api, make_client):
        api.reply(json=logs_page(["1"], cursor="c1"))
        api.reply(400, json={"errors": [{"code": "invalidCursor", "message": "bad", "field": "cursor"}]})
        async with make_client() as client:
            results = await collect(client.stream_result(LOGS))

        assert [r.ok for r in results] == [True, False]
        assert results[0].value.id == "1"
        assert isinstance(results[1].error, InputError)
        assert len(api.requests) == 2

    @pytest.mark.asyncio
    async def test_raising_form_surfaces_error_after_entities(self, api, make_client):
        api.reply(json=logs_page(["1"], cursor="c1"))
        api.reply(404, json={"code": "notFound", "message": "gone"})
        seen = []
        async with make_client() as client:
            with pytest.raises(NotFoundError):
                async for log in client.stream(LOGS):
                    seen.append(log.id)
        assert seen == ["1"]

    @pytest.mark.asyncio
    async def test_independent_streams(self, api, project, test_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            api.requests.append(request)
            kind = request.url.params["types"]
            cursor = request.url.params.get("cursor")
            if cursor is None:
                return httpx.Response(200, json=logs_page([f"{kind}-1"], cursor=f"{kind}-c"))
            return httpx.Response(200, json=logs_page([f"{kind}-2"]))

        transport = httpx.MockTransport(handler)
        async with AccessClient(project, test_settings, retry=NO_WAIT, transport=transport) as client:
            sent, failed = await asyncio.gather(
                collect(client.stream(LOGS, types=["sent"])),
                collect(client.stream(LOGS, types=["failed"])),
            )

        assert [log.id for log in sent] == ["sent-1", "sent-2"]
        assert [log.id for log in failed] == ["failed-1", "failed-2"]


class TestRetry:
    @pytest.mark.asyncio
    async def test_server_error_retried_to_ceiling(self, api, make_client):
        for _ in range(4):
            api.reply(500, content=b"boom")
        async with make_client() as client:
            with pytest.raises(InternalServerError):
                await collect(client.stream(LOGS))
        assert len(api.requests) == 4

    @pytest.mark.asyncio
    async def test_custom_ceiling(self, api, make_client):
        for _ in range(2):
            api.reply(503, content=b"")
        async with make_client(retry=RetryPolicy(attempts=2, initial=0, max_wait=0, jitter=0)) as client:
            result = await client.get_page_result(LOGS)
        assert isinstance(result.error, InternalServerError)
        assert len(api.requests) == 2

    @pytest.mark.asyncio
    async def test_client_error_never_retried(self, api, make_client):
        api.reply(400, json=[{"code": "invalidField", "message": "bad date", "field": "after"}])
        async with make_client() as client:
            with pytest.raises(InputError) as info:
                await client.get_page(LOGS)
        assert len(api.requests) == 1
        assert info.value.errors[0].field == "after"

    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self, api, make_client):
        api.reply(502, content=b"bad gateway")
        api.fail(httpx.ConnectError("reset"))
        api.reply(json=logs_page(["1"]))
        async with make_client() as client:
            logs = await collect(client.stream(LOGS))
        assert [log.id for log in logs] == ["1"]
        assert len(api.requests) == 3

    @pytest.mark.asyncio
    async def test_each_attempt_is_signed_afresh(self, api, make_client):
        api.reply(500, content=b"")
        api.reply(json={"log": log_json("1")})
        async with make_client() as client:
            await client.get_id(LOGS, "1")
        assert all(ACCESS_SIGNATURE_HEADER in r.headers for r in api.requests)

    @pytest.mark.asyncio
    async def test_network_failure_exhausts_to_transport_error(self, api, make_client):
        for _ in range(4):
            api.fail(httpx.ReadTimeout("slow"))
        async with make_client() as client:
            with pytest.raises(TransportError) as info:
                await client.get_id(LOGS, "1")
        assert info.value.status_code is None
        assert len(api.requests) == 4

    @pytest.mark.asyncio
    async def test_retry_policy_builds_without_deprecation_warnings(self, make_client):
        async with make_client() as client:
            with warnings.catch_warnings():
                warnings.simplefilter("error")
                client._retrying("GET")
                client._retrying("POST")

    @pytest.mark.asyncio
    async def test_unparseable_client_error_not_retried(self, api, make_client):
        api.reply(429, content=b"slow down")
        async with make_client() as client:
            with pytest.raises(TransportError) as info:
                await client.get_id(LOGS, "1")
        assert info.value.status_code == 429
        assert len(api.requests) == 1


class TestIdentity:
    @pytest.mark.asyncio
    async def test_query_user_overrides_identity(self, api, make_client, organization):
        api.reply(json=logs_page(["1"]))
        async with make_client() as client:
            await client.get_page(LOGS, Query(user=organization))
        request = api.requests[0]
        assert request.headers[ACCESS_ID_HEADER] == "organization/4545454545454545"
        message = canonical_message(
            "organization/4545454545454545", FIXED_TIME, "GET", request.url.raw_path.decode(), ""
        )
        assert verify([organization.private_key.public_key()], message, request.headers[ACCESS_SIGNATURE_HEADER])

    @pytest.mark.asyncio
    async def test_production_credential_uses_production_host(self, api, make_client, private_key):
        from finaccess.core.user import Project

        api.reply(json={"log": log_json("1")})
        production = Project(id="9", private_key=private_key, environment="production")
        async with make_client(user=production) as client:
            await client.get_id(LOGS, "1")
        assert api.requests[0].url.host == "api.test"


class TestCreateAndDelete:
    @pytest.mark.asyncio
    async def test_post_sends_plural_envelope(self, api, make_client):
        from finaccess.resources import pix_request

        api.reply(json={"requests": [{"id": "r1", "amount": 100, "externalId": "ext-1", "status": "created"}]})
        async with make_client() as client:
            created = await client.post(pix_request.resource, [{"amount": 100, "externalId": "ext-1"}])

        assert created[0].id == "r1"
        assert created[0].external_id == "ext-1"
        request = api.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/v2/pix-request"
        assert b'"requests"' in request.content

    @pytest.mark.asyncio
    async def test_post_not_resent_after_read_timeout(self, api, make_client):
        from finaccess.resources import pix_request

        api.fail(httpx.ReadTimeout("slow"))
        api.reply(400, json={"errors": [{"code": "invalidExternalId", "message": "already used"}]})
        async with make_client() as client:
            with pytest.raises(TransportError) as info:
                await client.post(pix_request.resource, [{"amount": 100, "externalId": "ext-1"}])
        assert "ReadTimeout" in info.value.message
        assert [r.method for r in api.requests] == ["POST"]
        assert api.pending == 1

    @pytest.mark.asyncio
    async def test_post_not_resent_after_server_error(self, api, make_client):
        from finaccess.resources import pix_request

        api.reply(500, content=b"boom")
        async with make_client() as client:
            result = await client.post_result(pix_request.resource, [{"amount": 100, "externalId": "ext-1"}])
        assert isinstance(result.error, InternalServerError)
        assert len(api.requests) == 1

    @pytest.mark.asyncio
    async def test_post_resent_when_connection_failed(self, api, make_client):
        from finaccess.resources import pix_request

        api.fail(httpx.ConnectError("refused"))
        api.fail(httpx.ConnectTimeout("no route"))
        api.reply(json={"requests": [{"id": "r1", "amount": 100, "externalId": "ext-1"}]})
        async with make_client() as client:
            created = await client.post(pix_request.resource, [{"amount": 100, "externalId": "ext-1"}])
        assert created[0].id == "r1"
        assert len(api.requests) == 3

    @pytest.mark.asyncio
    async def test_delete_keeps_full_retry_policy(self, api, make_client):
        api.fail(httpx.ReadTimeout("slow"))
        api.reply(503, content=b"")
        api.reply(json={"log": log_json("1", "canceled")})
        async with make_client() as client:
            log = await client.delete_id(LOGS, "1")
        assert log.type == "canceled"
        assert len(api.requests) == 3

    @pytest.mark.asyncio
    async def test_delete(self, api, make_client):
        api.reply(json={"log": log_json("1", "canceled")})
        async with make_client() as client:
            log = await client.delete_id(LOGS, "1")
        assert log.type == "canceled"
        assert api.requests[0].method == "DELETE"

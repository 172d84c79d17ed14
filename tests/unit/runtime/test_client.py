"""Unit tests for APIClient request execution."""

import asyncio
import base64
import re

import pytest

from locus.client.core import (
    AUTH_TOKEN_HEADER,
    APIRedirectError,
    APIRequestError,
    APIServerError,
    APITransportError,
    CacheType,
    ClientSettings,
    LocationResolutionError,
    RequestParams,
    StaticSession,
)
from locus.client.models import BeforeRequestEvent
from locus.client.runtime import APIClient

GLOBAL_API = "https://api.global-services.global.alertlogic.com"
INSIGHT_API = "https://api.cloudinsight.alertlogic.com"
URL = "https://api.example.com/things"


class TestRequestUrlCalculation:
    """Test calculate_request_url and normalize_request."""

    @pytest.mark.asyncio
    async def test_service_url_without_discovery(self, client):
        url = await client.calculate_request_url(
            RequestParams(
                service_stack="insight:api",
                service_name="aims",
                version="v1",
                account_id="2",
                path="/users",
                no_endpoints_resolution=True,
            )
        )
        assert url == f"{INSIGHT_API}/aims/v1/2/users"

    @pytest.mark.asyncio
    async def test_numeric_version_and_unprefixed_path(self, client):
        url = await client.calculate_request_url(
            RequestParams(
                service_stack="global:api", service_name="aims", version=2, path="token"
            )
        )
        assert url == f"{GLOBAL_API}/aims/v2/token"

    @pytest.mark.asyncio
    async def test_zero_account_is_omitted(self, client):
        url = await client.calculate_request_url(
            RequestParams(service_stack="global:api", service_name="aims", account_id="0")
        )
        assert url == f"{GLOBAL_API}/aims"

    @pytest.mark.asyncio
    async def test_normalize_merges_global_parameters(self, client):
        client.set_global_parameters(no_endpoints_resolution=True)
        normalized = await client.normalize_request(
            RequestParams(service_name="search", account_id="2", path="/queries")
        )
        assert normalized.url == f"{INSIGHT_API}/search/v1/2/queries"
        assert normalized.residency == "default"

    @pytest.mark.asyncio
    async def test_normalize_folds_accept_header(self, client, caplog):
        normalized = await client.normalize_request(
            RequestParams(url=URL, accept_header="text/csv")
        )
        assert normalized.headers == {"Accept": "text/csv"}
        assert normalized.accept_header is None
        assert "accept_header is deprecated" in caplog.text

    @pytest.mark.asyncio
    async def test_request_without_url_fails_at_send(self, client, caplog):
        with pytest.raises(LocationResolutionError):
            await client.post(data={"a": 1})
        assert "neither a URL nor a service" in caplog.text

    @pytest.mark.asyncio
    async def test_normalize_does_not_modify_caller_params(self, client):
        client.set_global_parameters(no_endpoints_resolution=True)
        params = RequestParams(service_name="aims")
        await client.normalize_request(params)
        assert params.url is None
        assert params.version is None


class TestGetCaching:
    """Test response caching and in-flight de-duplication."""

    @pytest.mark.asyncio
    async def test_cached_get_skips_network(self, client, transport):
        transport.respond("GET", URL, data={"n": 1})
        assert await client.get(url=URL, ttl=60000) == {"n": 1}
        assert await client.get(url=URL, ttl=60000) == {"n": 1}
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_ttl_true_uses_default_lifetime(self, client, transport):
        transport.respond("GET", URL, data={"n": 1})
        await client.get(url=URL, ttl=True)
        assert client.storage.exists(URL)

    @pytest.mark.asyncio
    async def test_short_ttl_is_not_stored(self, client, transport):
        transport.respond("GET", URL, data={"n": 1})
        await client.get(url=URL, ttl=500)
        await client.get(url=URL, ttl=500)
        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_uncached_by_default(self, client, transport):
        transport.respond("GET", URL, data={"n": 1})
        await client.get(url=URL)
        await client.get(url=URL)
        assert len(transport.calls) == 2
        assert client.get_cached_data() == {}

    @pytest.mark.asyncio
    async def test_disable_cache_bypasses_read(self, client, transport):
        transport.respond("GET", URL, data={"n": 1})
        await client.get(url=URL, ttl=60000)
        await client.get(url=URL, ttl=60000, disable_cache=True)
        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_cache_key_includes_query(self, client, transport):
        transport.respond("GET", URL, data={"n": 1})
        await client.get(url=URL, params={"page": 1}, ttl=60000)
        await client.get(url=URL, params={"page": 2}, ttl=60000)
        assert len(transport.calls) == 2
        assert set(client.get_cached_data()) == {f"{URL}?page=1", f"{URL}?page=2"}

    @pytest.mark.asyncio
    async def test_explicit_cache_key(self, client, transport):
        transport.respond("GET", URL, data={"n": 1})
        await client.get(url=URL, params={"page": 1}, ttl=60000, cache_key="things")
        await client.get(url=URL, params={"page": 2}, ttl=60000, cache_key="things")
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_gets_share_one_request(self, client, transport):
        transport.respond("GET", URL, data={"n": 1}, delay=0.02)
        first, second = await asyncio.gather(client.get(url=URL), client.get(url=URL))
        assert first == second == {"n": 1}
        assert len(transport.calls) == 1
        assert client._in_flight == {}

    @pytest.mark.asyncio
    async def test_cancelled_caller_leaves_request_shared(self, client, transport):
        transport.respond("GET", URL, data={"n": 1}, delay=0.05)
        first = asyncio.create_task(client.get(url=URL, ttl=60000))
        await asyncio.sleep(0.01)
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        assert URL in client._in_flight
        assert await client.get(url=URL, ttl=60000) == {"n": 1}
        assert len(transport.calls) == 1
        assert client.storage.get(URL) == {"n": 1}
        assert client._in_flight == {}

    @pytest.mark.asyncio
    async def test_abandoned_request_is_cached(self, client, transport):
        transport.respond("GET", URL, data={"n": 1}, delay=0.02)
        first = asyncio.create_task(client.get(url=URL, ttl=60000))
        await asyncio.sleep(0)
        first.cancel()
        await asyncio.sleep(0.05)

        assert client._in_flight == {}
        assert await client.get(url=URL, ttl=60000) == {"n": 1}
        assert len(transport.calls) == 1

        assert client._in_flight == {}

    @pytest.mark.asyncio
    async def test_failed_inflight_request_is_released(self, client, transport):
        transport.respond("GET", URL, status=404)
        with pytest.raises(APIRequestError):
            await client.get(url=URL)
        assert client._in_flight == {}

    @pytest.mark.asyncio
    async def test_ephemeral_cache_type(self, client, transport):
        transport.respond("GET", URL, data={"n": 1})
        await client.get(url=URL, ttl=60000, cache_type=CacheType.EPHEMERAL)
        assert not client.storage.exists(URL)
        assert client._cabinet(CacheType.EPHEMERAL).exists(URL)
        await client.get(url=URL, ttl=60000, cache_type=CacheType.EPHEMERAL)
        assert len(transport.calls) == 1
        client.reset()

    @pytest.mark.asyncio
    async def test_persistent_cache_without_directory_falls_back(self, client, caplog):
        assert client._cabinet(CacheType.PERSISTENT) is client.storage
        assert "No cache_directory configured" in caplog.text

    @pytest.mark.asyncio
    async def test_persistent_cache_with_directory(self, transport, tmp_path):
        client = APIClient(ClientSettings(cache_directory=tmp_path), transport=transport)
        transport.respond("GET", URL, data={"n": 1})
        await client.get(url=URL, ttl=60000, cache_type=CacheType.PERSISTENT)
        await client.close()
        assert (tmp_path / "locus.client.cache.persistent.json").exists()


class TestWrites:
    """Test write operations and cache invalidation."""

    @pytest.mark.asyncio
    async def test_query_params_accepted_by_every_operation(self, client, transport):
        for method in ("GET", "POST", "PUT", "DELETE"):
            transport.respond(method, URL, data={})
        await client.get(url=URL, params={"page": 1})
        await client.post(url=URL, params={"page": 1}, data={"name": "x"})
        await client.put(url=URL, params={"page": 1})
        await client.delete(url=URL, params={"page": 1})
        await client.form(url=URL, params={"page": 1}, data={"file": "content"})

        assert [call.method for call in transport.calls] == ["GET", "POST", "PUT", "DELETE", "POST"]
        assert [call.params for call in transport.calls] == [{"page": 1}] * 5

    @pytest.mark.asyncio
    async def test_global_query_params(self, client, transport):
        transport.respond("GET", f"{GLOBAL_API}/aims/v1", data={})
        client.set_global_parameters(params={"tenant": "a"})
        await client.get(service_stack="global:api", service_name="aims", params={"x": 1})
        assert transport.calls[0].params == {"tenant": "a", "x": 1}

    @pytest.mark.asyncio
    async def test_params_keyword_alongside_request_object(self, client, transport):
        transport.respond("GET", URL, data={})
        await client.get(RequestParams(url=URL), params={"page": 3})
        assert transport.calls[0].params == {"page": 3}

    @pytest.mark.asyncio
    async def test_post_invalidates_url_and_query_variants(self, client, transport):
        transport.respond("GET", URL, data={"n": 1}).respond("POST", URL, data={"ok": True})
        await client.get(url=URL, ttl=60000)
        await client.get(url=URL, params={"page": 1}, ttl=60000)
        client.storage.set("https://api.example.com/things-other", 1)

        assert await client.post(url=URL, data={"name": "x"}) == {"ok": True}
        assert set(client.get_cached_data()) == {"https://api.example.com/things-other"}

    @pytest.mark.asyncio
    async def test_put_delete_and_aliases(self, client, transport):
        transport.respond("PUT", URL, data={"put": True}).respond("DELETE", URL, status=204)
        assert await client.put(url=URL, data={}) == {"put": True}
        assert await client.set(url=URL, data={}) == {"put": True}
        assert await client.delete(url=URL) is None
        assert [call.method for call in transport.calls] == ["PUT", "PUT", "DELETE"]

    @pytest.mark.asyncio
    async def test_fetch_alias(self, client, transport):
        transport.respond("GET", URL, data=[1])
        assert await client.fetch(url=URL) == [1]

    @pytest.mark.asyncio
    async def test_form_posts_multipart(self, client, transport):
        transport.respond("POST", URL, data={"ok": True})
        await client.form(url=URL, data={"file": "content"})

        call = transport.calls[0]
        assert call.form is True
        assert call.headers["Content-Type"] == "multipart/form-data"
        assert call.data == {"file": "content"}


class TestRetry:
    """Test retry policy and backoff."""

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self, client, transport):
        transport.respond("GET", URL, status=503).respond("GET", URL, data={"n": 1})
        assert await client.get(url=URL, retry_count=2, retry_interval=1) == {"n": 1}

        assert len(transport.calls) == 2
        assert transport.calls[0].params is None
        assert re.fullmatch(r"[a-z-]+-\w+-1", transport.calls[1].params["breaker"])

    @pytest.mark.asyncio
    async def test_redirect_status_is_retried(self, client, transport):
        transport.respond("GET", URL, status=302).respond("GET", URL, data={"n": 1})
        assert await client.get(url=URL, retry_count=1, retry_interval=1) == {"n": 1}
        assert len(transport.calls) == 2
        assert "breaker" in transport.calls[1].params

    @pytest.mark.asyncio
    async def test_redirect_status_without_retries_raises(self, client, transport):
        transport.respond("GET", URL, status=301)
        with pytest.raises(APIRedirectError):
            await client.get(url=URL)

    @pytest.mark.asyncio
    async def test_transport_failure_is_retried(self, client, transport):
        transport.fail("GET", URL, APITransportError("refused"))
        transport.respond("GET", URL, data={"n": 1})
        assert await client.get(url=URL, retry_count=1, retry_interval=1) == {"n": 1}

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, client, transport):
        transport.respond("GET", URL, status=404)
        with pytest.raises(APIRequestError):
            await client.get(url=URL, retry_count=3, retry_interval=1)
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self, client, transport):
        transport.respond("GET", URL, status=502)
        with pytest.raises(APIServerError) as exc_info:
            await client.get(url=URL, retry_count=2, retry_interval=1)
        assert exc_info.value.status_code == 502
        assert len(transport.calls) == 3

    @pytest.mark.asyncio
    async def test_no_retry_without_retry_count(self, client, transport):
        transport.respond("GET", URL, status=500)
        with pytest.raises(APIServerError):
            await client.get(url=URL)
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_linear_backoff(self, client, transport, monkeypatch):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr("locus.client.runtime.client.asyncio.sleep", fake_sleep)
        transport.respond("GET", URL, status=500)
        with pytest.raises(APIServerError):
            await client.get(url=URL, retry_count=3, retry_interval=100)
        assert delays == [0.1, 0.2, 0.3]

    def test_is_retryable_error(self, client):
        request = RequestParams(url=URL, retry_count=2)
        assert client.is_retryable_error(None, request, 0)
        assert client.is_retryable_error(APITransportError("x"), request, 1)
        assert client.is_retryable_error(APIServerError("x", status_code=500), request, 0)
        assert client.is_retryable_error(APIRedirectError("x", status_code=302), request, 0)
        assert not client.is_retryable_error(APIServerError("x", status_code=500), request, 2)
        assert not client.is_retryable_error(APIRequestError("x", status_code=400), request, 0)
        assert not client.is_retryable_error(None, RequestParams(url=URL), 0)

    def test_cache_buster_format(self):
        buster = APIClient.generate_cache_buster(3)
        assert buster.endswith("-3")
        assert re.fullmatch(
            r"(debork|breaker|breaker-breaker|fix|unbork|corex|help)-\d+[0-9a-f]{8}-3", buster
        )
        assert APIClient.generate_cache_buster(3) != buster


class TestDiagnostics:
    """Test error capture and execution logging."""

    @pytest.mark.asyncio
    async def test_last_error_snapshot(self, client, transport, caplog):
        transport.respond("GET", URL, status=404, data={"error": "missing"})
        with pytest.raises(APIRequestError) as exc_info:
            await client.get(url=URL)

        snapshot = client.get_last_error()
        assert snapshot.status == 404
        assert snapshot.url == URL
        assert snapshot.data == {"error": "missing"}
        assert exc_info.value.data == {"error": "missing"}
        assert "Received response 404" in caplog.text

    @pytest.mark.asyncio
    async def test_last_error_overwritten(self, client, transport):
        transport.respond("GET", URL, status=404).respond("POST", URL, status=500)
        with pytest.raises(APIRequestError):
            await client.get(url=URL)
        with pytest.raises(APIServerError):
            await client.post(url=URL)
        assert client.get_last_error().status == 500

    @pytest.mark.asyncio
    async def test_execution_log_and_summary(self, client, transport):
        client.collect_request_log = True
        transport.respond("GET", URL, data={"n": 1}).respond("POST", URL, status=500)
        await client.get(url=URL, params={"a": 1})
        with pytest.raises(APIServerError):
            await client.post(url=URL)

        log = client.get_execution_request_log()
        assert [(item.method, item.url, item.response_code) for item in log] == [
            ("GET", f"{URL}?a=1", 200),
            ("POST", URL, 500),
        ]
        assert log[0].response_content_length == len('{"n": 1}')
        assert log[1].error_message
        summary = client.get_execution_summary()
        assert summary.number_of_requests == 2
        assert summary.total_bytes == len('{"n": 1}')

    @pytest.mark.asyncio
    async def test_write_log_includes_query_string(self, client, transport):
        client.collect_request_log = True
        transport.respond("DELETE", URL, data={})
        await client.delete(url=URL, params={"id": 7})
        assert client.get_execution_request_log()[0].url == f"{URL}?id=7"

    @pytest.mark.asyncio
    async def test_execution_log_off_by_default(self, client, transport):
        transport.respond("GET", URL, data={"n": 1})
        await client.get(url=URL)
        assert client.get_execution_request_log() == []

    def test_request_to_curl_command(self, client):
        command = client.request_to_curl_command(
            RequestParams(method="GET", url=URL, params={"a": 1}, headers={"X": "1"}),
            prettify=False,
        )
        assert command == f"curl -X GET '{URL}?a=1' -H 'X: 1' --verbose"

    @pytest.mark.asyncio
    async def test_verbose_curl_output(self, client, transport, caplog):
        caplog.set_level("INFO", logger="locus.client.runtime.client")
        client.verbose = True
        transport.respond("GET", URL, data={"n": 1})
        await client.get(url=URL, curl=True)
        assert "curl -X GET" in caplog.text
        assert "Received HTTP 200" in caplog.text


class TestPreRequest:
    """Test events and session token attachment."""

    @pytest.mark.asyncio
    async def test_session_token_attached(self, transport):
        client = APIClient(transport=transport, session=StaticSession(token="tok"))
        transport.respond("GET", URL, data={})
        await client.get(url=URL)
        assert transport.calls[0].headers[AUTH_TOKEN_HEADER] == "tok"
        assert transport.calls[0].headers["Accept"] == "application/json, text/plain, */*"

    @pytest.mark.asyncio
    async def test_explicit_token_header_kept(self, transport):
        client = APIClient(transport=transport, session=StaticSession(token="tok"))
        transport.respond("GET", URL, data={})
        await client.get(url=URL, headers={AUTH_TOKEN_HEADER: "mine"})
        assert transport.calls[0].headers[AUTH_TOKEN_HEADER] == "mine"

    @pytest.mark.asyncio
    async def test_before_request_subscribers_modify_headers(self, client, transport):
        seen = []

        def on_event(event):
            match event:
                case BeforeRequestEvent(request=request):
                    seen.append(request.url)
                    event.set_header("X-Trace", "abc")

        client.events.attach(on_event)
        transport.respond("GET", URL, data={})
        await client.get(url=URL)
        assert seen == [URL]
        assert transport.calls[0].headers["X-Trace"] == "abc"


class TestAuthentication:
    """Test authentication requests."""

    @pytest.mark.asyncio
    async def test_basic_authentication(self, client, transport):
        auth_url = f"{GLOBAL_API}/aims/v1/authenticate"
        transport.respond("POST", auth_url, data={"authentication": {"token": "t"}})
        result = await client.authenticate("user@example.com", "secret")

        assert result == {"authentication": {"token": "t"}}
        call = transport.calls[0]
        expected = base64.b64encode(b"user@example.com:secret").decode()
        assert call.headers["Authorization"] == f"Basic {expected}"
        assert call.data == {}

    @pytest.mark.asyncio
    async def test_authentication_with_mfa(self, client, transport):
        auth_url = f"{GLOBAL_API}/aims/v1/authenticate"
        transport.respond("POST", auth_url, data={})
        await client.authenticate("user", "pass", "123456")
        assert transport.calls[0].data == {"mfa_code": "123456"}

    @pytest.mark.asyncio
    async def test_session_token_authentication(self, client, transport):
        auth_url = f"{GLOBAL_API}/aims/v1/authenticate"
        transport.respond("POST", auth_url, data={})
        await client.authenticate_with_session_token("session-token", "654321")
        call = transport.calls[0]
        assert call.headers["X-AIMS-Session-Token"] == "session-token"
        assert call.data == {"mfa_code": "654321"}


class TestLifecycle:
    """Test fluent requests, cache import/export, reset and close."""

    @pytest.mark.asyncio
    async def test_fluent_request(self, client, transport):
        transport.respond("GET", URL, data={"id": "1"})
        result = await (
            client.request("GET").for_url(URL).enable_cache(ttl=60).with_converter(
                lambda d: d["id"]
            ).execute()
        )
        assert result == "1"
        assert client.storage.exists(URL)

    @pytest.mark.asyncio
    async def test_fluent_post(self, client, transport):
        transport.respond("POST", URL, data={"ok": True})
        result = await client.request("POST").for_url(URL).with_data({"a": 1}).execute()
        assert result == {"ok": True}
        assert transport.calls[0].data == {"a": 1}

    def test_merge_cache_data(self, client):
        client.merge_cache_data({"key": {"expires": 0, "value": "imported"}})
        assert client.storage.get("key") == "imported"
        assert client.get_cached_data()["key"]["value"] == "imported"

    @pytest.mark.asyncio
    async def test_reset(self, client, transport):
        client.collect_request_log = True
        client.set_global_parameters(no_endpoints_resolution=True)
        transport.respond("GET", URL, status=500)
        client.storage.set("key", 1)
        with pytest.raises(APIServerError):
            await client.get(url=URL)

        client.reset()
        assert client.get_cached_data() == {}
        assert client.get_execution_request_log() == []
        assert client.get_last_error() is None
        assert client._global_params.no_endpoints_resolution is None

    @pytest.mark.asyncio
    async def test_async_context_manager_closes_transport(self, transport):
        async with APIClient(transport=transport) as client:
            assert client.default_account_id is None
        assert transport.closed

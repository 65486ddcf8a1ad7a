from __future__ import annotations

import asyncio

import httpx
import pytest

from listlens.ingestion import catalog_client as catalog_module
from listlens.ingestion.catalog_client import (
    GAME_FIELDS,
    CatalogAuthenticationError,
    CatalogClient,
    CatalogClientError,
    CatalogRateLimitError,
    build_games_query,
)
from listlens.models import ItemId

TOKEN_URL = "https://id.twitch.tv/oauth2/token"
GAMES_URL = "https://api.igdb.com/v4/games"


class _FakeIgdb:
    """Serves the token endpoint and replays queued responses for the games endpoint."""

    def __init__(self, game_responses=None, token_response=None):
        self.game_responses = list(game_responses or [])
        self.token_response = token_response or httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        self.token_calls = []
        self.game_calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        if url == TOKEN_URL:
            self.token_calls.append(request)
            return self.token_response
        if url == GAMES_URL:
            self.game_calls.append(request)
            if not self.game_responses:
                raise AssertionError("games endpoint called more times than expected")
            response = self.game_responses.pop(0)
            if callable(response):
                return response(request)
            return response
        raise AssertionError(f"unexpected request to {request.url}")


def _echo_games(request: httpx.Request) -> httpx.Response:
    body = request.content.decode("utf-8")
    ids = body.split("where id=(")[1].split(")")[0].split(",")
    return httpx.Response(
        200,
        json=[{"id": int(item), "name": f"Game {item}", "first_release_date": 0} for item in ids],
    )


def _client(fake, **kwargs):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
    return CatalogClient("client-id", "s3cret", http_client=http_client, **kwargs)


def _ids(*values):
    return [ItemId.catalog(value) for value in values]


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []

    async def fake_sleep(seconds):
        recorded.append(seconds)

    monkeypatch.setattr(catalog_module.asyncio, "sleep", fake_sleep)
    return recorded


def test_build_games_query_selects_projection_and_limits():
    query = build_games_query(_ids(1, 2))

    assert query == f"fields {','.join(GAME_FIELDS)}; where id=(1,2); limit 2;"
    assert "involved_companies.company.start_date" in query


def test_token_is_requested_once_and_sent_with_every_lookup():
    fake = _FakeIgdb([_echo_games, _echo_games])

    async def scenario():
        client = _client(fake)
        first = await client.fetch_batch(_ids(1))
        second = await client.fetch_batch(_ids(2))
        return client, first, second

    client, first, second = asyncio.run(scenario())

    assert len(fake.token_calls) == 1
    params = fake.token_calls[0].url.params
    assert params["grant_type"] == "client_credentials"
    assert params["client_id"] == "client-id"
    assert params["client_secret"] == "s3cret"
    assert fake.token_calls[0].method == "POST"
    for request in fake.game_calls:
        assert request.method == "POST"
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.headers["Client-ID"] == "client-id"
    assert client.access_token == "tok"
    assert [record.id for record in first] == _ids(1)
    assert [record.id for record in second] == _ids(2)


def test_concurrent_lookups_share_one_login():
    fake = _FakeIgdb([_echo_games, _echo_games, _echo_games])

    async def scenario():
        client = _client(fake)
        return await asyncio.gather(*(client.fetch_batch(_ids(value)) for value in (1, 2, 3)))

    asyncio.run(scenario())

    assert len(fake.token_calls) == 1
    assert len(fake.game_calls) == 3


def test_rate_limited_request_is_replayed_after_cooldown(sleeps):
    fake = _FakeIgdb([httpx.Response(429), _echo_games])

    async def scenario():
        return await _client(fake).fetch_batch(_ids(7, 3))

    records = asyncio.run(scenario())

    assert sleeps == [60.0]
    assert len(fake.game_calls) == 2
    assert fake.game_calls[0].content == fake.game_calls[1].content
    assert [record.id for record in records] == _ids(7, 3)


def test_cooldown_is_configurable(sleeps):
    fake = _FakeIgdb([httpx.Response(429), _echo_games])

    async def scenario():
        return await _client(fake, rate_limit_cooldown=0.5).fetch_batch(_ids(1))

    asyncio.run(scenario())

    assert sleeps == [0.5]


def test_second_rate_limit_is_fatal(sleeps):
    fake = _FakeIgdb([httpx.Response(429), httpx.Response(429)])

    async def scenario():
        await _client(fake).fetch_batch(_ids(1))

    with pytest.raises(CatalogRateLimitError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.status_code == 429
    assert len(fake.game_calls) == 2
    assert sleeps == [60.0]


def test_server_errors_are_not_retried(sleeps):
    fake = _FakeIgdb([httpx.Response(500)])

    async def scenario():
        await _client(fake).fetch_batch(_ids(1))

    with pytest.raises(CatalogClientError) as excinfo:
        asyncio.run(scenario())

    assert not isinstance(excinfo.value, CatalogRateLimitError)
    assert excinfo.value.status_code == 500
    assert len(fake.game_calls) == 1
    assert sleeps == []


def test_rejected_login_raises_without_leaking_secret():
    fake = _FakeIgdb(token_response=httpx.Response(400, json={"message": "invalid client secret"}))

    async def scenario():
        await _client(fake).fetch_batch(_ids(1))

    with pytest.raises(CatalogAuthenticationError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.status_code == 400
    assert "s3cret" not in str(excinfo.value)
    assert fake.game_calls == []


def test_login_without_token_raises():
    fake = _FakeIgdb(token_response=httpx.Response(200, json={"expires_in": 3600}))

    async def scenario():
        await _client(fake).authenticate()

    with pytest.raises(CatalogAuthenticationError, match="access_token"):
        asyncio.run(scenario())


def test_missing_credentials_rejected():
    with pytest.raises(CatalogAuthenticationError):
        CatalogClient("", "secret")


def test_non_catalog_ids_are_refused():
    fake = _FakeIgdb()

    async def scenario():
        await _client(fake).fetch_batch([ItemId.other("mod")])

    with pytest.raises(ValueError, match="Only catalog ids"):
        asyncio.run(scenario())

    assert fake.token_calls == []


def test_empty_batch_makes_no_requests():
    fake = _FakeIgdb()

    async def scenario():
        return await _client(fake).fetch_batch([])

    assert asyncio.run(scenario()) == []
    assert fake.token_calls == []


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"id": 1}),
        httpx.Response(200, json=[{"id": 1, "name": "No release date"}]),
        httpx.Response(200, content=b"not json"),
    ],
)
def test_malformed_game_payloads_raise(response):
    fake = _FakeIgdb([response])

    async def scenario():
        await _client(fake).fetch_batch(_ids(1))

    with pytest.raises(CatalogClientError):
        asyncio.run(scenario())


def test_fetch_missing_splits_sorted_ids_into_batches():
    fake = _FakeIgdb([_echo_games, _echo_games, _echo_games])

    async def scenario():
        return await _client(fake).fetch_missing(set(_ids(5, 1, 4, 2, 3)), batch_size=2)

    records = asyncio.run(scenario())

    bodies = [request.content.decode("utf-8") for request in fake.game_calls]
    assert [body.split("; ")[1] for body in bodies] == ["where id=(1,2)", "where id=(3,4)", "where id=(5)"]
    assert bodies[0].endswith("limit 2;")
    assert bodies[2].endswith("limit 1;")
    assert [record.id for record in records] == _ids(1, 2, 3, 4, 5)


def test_owned_http_client_is_closed():
    async def scenario():
        async with CatalogClient("id", "secret") as client:
            inner = client._client
        return inner

    assert asyncio.run(scenario()).is_closed


def test_injected_http_client_is_left_open():
    async def scenario():
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(_FakeIgdb()))
        async with CatalogClient("id", "secret", http_client=http_client):
            pass
        closed = http_client.is_closed
        await http_client.aclose()
        return closed

    assert asyncio.run(scenario()) is False


def test_error_messages_redact_query_strings():
    fake = _FakeIgdb(token_response=httpx.Response(503))

    async def scenario():
        await _client(fake).authenticate()

    with pytest.raises(CatalogAuthenticationError) as excinfo:
        asyncio.run(scenario())

    message = str(excinfo.value)
    assert "https://id.twitch.tv/oauth2/token" in message
    assert "client_secret" not in message
    assert "s3cret" not in message


def test_transport_errors_are_wrapped():
    def refuse(request):
        if request.url.host == "api.igdb.com":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"access_token": "tok"})

    async def scenario():
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        await CatalogClient("id", "secret", http_client=http_client).fetch_batch(_ids(1))

    with pytest.raises(CatalogClientError, match="connection refused") as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.status_code is None

import pytest
from datetime import datetime, timedelta
from httpx import AsyncClient

from shorturls.registry import ShortLinkRegistry


def parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

@pytest.mark.asyncio
async def test_create_short_url(client: AsyncClient):
    response = await client.post("/shorturls", json={"url": "https://www.example.com/a/very/long/path"})
    assert response.status_code == 201
    data = response.json()

    assert set(data) == {"shortLink", "expiry"}
    code = data["shortLink"].rsplit("/", 1)[-1]
    assert data["shortLink"] == f"http://test/{code}"
    assert len(code) == 6 and code.isalnum()

    # Verify stats
    response = await client.get(f"/shorturls/{code}")
    assert response.status_code == 200
    stats = response.json()
    assert stats["originalUrl"] == "https://www.example.com/a/very/long/path"
    assert stats["totalClicks"] == 0
    assert stats["clicks"] == []
    assert parse_ts(stats["expiry"]) - parse_ts(stats["createdAt"]) == timedelta(minutes=30)
    assert parse_ts(stats["expiry"]) == parse_ts(data["expiry"])

@pytest.mark.asyncio
async def test_create_with_custom_code_and_validity(client: AsyncClient):
    payload = {"url": "https://www.google.com", "validity": 5, "shortcode": "goGoogle1"}
    response = await client.post("/shorturls", json=payload)
    assert response.status_code == 201
    assert response.json()["shortLink"] == "http://test/goGoogle1"

    stats = (await client.get("/shorturls/goGoogle1")).json()
    assert parse_ts(stats["expiry"]) - parse_ts(stats["createdAt"]) == timedelta(minutes=5)

@pytest.mark.asyncio
async def test_non_numeric_validity_uses_default(client: AsyncClient):
    response = await client.post("/shorturls", json={"url": "https://example.com", "validity": "ten", "shortcode": "dflt1"})
    assert response.status_code == 201
    stats = (await client.get("/shorturls/dflt1")).json()
    assert parse_ts(stats["expiry"]) - parse_ts(stats["createdAt"]) == timedelta(minutes=30)

@pytest.mark.asyncio
async def test_base_url_setting_overrides_request_host(settings):
    from httpx import ASGITransport
    from shorturls.main import create_app

    settings.BASE_URL = "https://sho.rt/"
    app = create_app(settings)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        response = await c.post("/shorturls", json={"url": "https://example.com", "shortcode": "based1"})
    assert response.json()["shortLink"] == "https://sho.rt/based1"

@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {},
    {"url": ""},
    {"url": "not-a-url"},
    {"url": "ftp://example.com/file.txt"},
    {"url": 12345},
])
async def test_create_rejects_invalid_url(client: AsyncClient, payload):
    response = await client.post("/shorturls", json=payload)
    assert response.status_code == 400
    assert "error" in response.json()

@pytest.mark.asyncio
async def test_create_rejects_malformed_body(client: AsyncClient):
    response = await client.post("/shorturls", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert "error" in response.json()

@pytest.mark.asyncio
@pytest.mark.parametrize("shortcode", ["ab1", "waytoolongcode", "bad-code"])
async def test_create_rejects_invalid_shortcode(client: AsyncClient, shortcode):
    response = await client.post("/shorturls", json={"url": "https://example.com", "shortcode": shortcode})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid shortcode format. Must be alphanumeric, 4-10 chars."}

@pytest.mark.asyncio
async def test_create_collision(client: AsyncClient):
    await client.post("/shorturls", json={"url": "https://first.example", "shortcode": "taken"})
    response = await client.post("/shorturls", json={"url": "https://second.example", "shortcode": "taken"})
    assert response.status_code == 409
    assert response.json() == {"error": "Shortcode already in use."}

    stats = (await client.get("/shorturls/taken")).json()
    assert stats["originalUrl"] == "https://first.example"

@pytest.mark.asyncio
async def test_redirect_records_click(client: AsyncClient):
    await client.post("/shorturls", json={"url": "https://www.google.com/search?q=x", "shortcode": "srch"})

    response = await client.get("/srch", headers={"Referer": "https://news.example/post"})
    assert response.status_code == 302
    assert response.headers["location"] == "https://www.google.com/search?q=x"

    response = await client.get("/srch")
    assert response.status_code == 302

    stats = (await client.get("/shorturls/srch")).json()
    assert stats["totalClicks"] == 2
    assert [c["referrer"] for c in stats["clicks"]] == ["https://news.example/post", "direct"]
    assert [c["geo"] for c in stats["clicks"]] == ["IN", "IN"]
    assert parse_ts(stats["clicks"][0]["timestamp"]) <= parse_ts(stats["clicks"][1]["timestamp"])

@pytest.mark.asyncio
async def test_redirect_unknown_shortcode(client: AsyncClient):
    response = await client.get("/nothere")
    assert response.status_code == 404
    assert response.json() == {"error": "Shortcode not found."}

@pytest.mark.asyncio
async def test_stats_unknown_shortcode(client: AsyncClient):
    response = await client.get("/shorturls/nothere")
    assert response.status_code == 404
    assert response.json() == {"error": "Shortcode does not exist."}

@pytest.mark.asyncio
async def test_expired_redirect_is_gone_but_stats_remain(app, client: AsyncClient, clock):
    app.state.registry = ShortLinkRegistry(clock=clock)

    await client.post("/shorturls", json={"url": "https://example.com", "validity": 1, "shortcode": "brief"})
    clock.advance(seconds=30)
    assert (await client.get("/brief")).status_code == 302

    clock.advance(seconds=31)
    response = await client.get("/brief")
    assert response.status_code == 410
    assert response.json() == {"error": "Shortcode expired."}

    response = await client.get("/shorturls/brief")
    assert response.status_code == 200
    assert response.json()["totalClicks"] == 1

@pytest.mark.asyncio
async def test_unexpected_failure_is_generic_500(app, client: AsyncClient):
    def broken_clock():
        raise RuntimeError("secret internals")

    app.state.registry = ShortLinkRegistry(clock=broken_clock)
    response = await client.post("/shorturls", json={"url": "https://example.com"})
    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}

@pytest.mark.asyncio
async def test_requests_are_buffered_for_access_log(app, client: AsyncClient, settings):
    await client.get("/health", headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
    app.state.access_log.flush()

    with open(settings.ACCESS_LOG_PATH) as f:
        line = f.read().strip()
    assert line.endswith("GET /health from 203.0.113.7")

@pytest.mark.asyncio
async def test_metrics(client: AsyncClient):
    await client.post("/shorturls", json={"url": "https://example.com", "shortcode": "metric1"})
    await client.get("/metric1")

    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "shorturls_created_total" in response.text
    assert 'path="/{code}"' in response.text

@pytest.mark.asyncio
async def test_long_url_round_trip(client: AsyncClient):
    long_url = "https://example.com/search?q=" + "a" * 2100
    response = await client.post("/shorturls", json={"url": long_url, "shortcode": "longone"})
    assert response.status_code == 201

    response = await client.get("/longone")
    assert response.status_code == 302
    assert response.headers["location"] == long_url

@pytest.mark.asyncio
async def test_non_string_url_reaches_invalid_url_branch(app, client: AsyncClient, clock, recorder):
    app.state.registry = ShortLinkRegistry(events=recorder, clock=clock)
    response = await client.post("/shorturls", json={"url": 12345})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid or missing URL."}
    assert recorder.levels == ["error"]

@pytest.mark.asyncio
async def test_lifespan_ships_events_and_flushes_access_log(settings):
    import httpx
    from httpx import ASGITransport
    from shorturls.events import EventLogger
    from shorturls.main import create_app

    delivered = []

    def sink(request: httpx.Request) -> httpx.Response:
        delivered.append(request)
        return httpx.Response(200, json={"logID": "1"})

    events = EventLogger("http://logs.test/logs", transport=httpx.MockTransport(sink))
    app = create_app(settings, geo_lookup=lambda ip: "IN", events=events)

    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            response = await c.post("/shorturls", json={"url": "https://example.com", "shortcode": "life1"})
            assert response.status_code == 201
            assert (await c.get("/life1")).status_code == 302

    # Shutdown drained the event queue and wrote the last access-log batch
    assert events.pending == 0
    messages = [request.read().decode() for request in delivered]
    assert any("Short URL created: life1" in m for m in messages)
    assert any("Redirecting shortcode: life1" in m for m in messages)

    with open(settings.ACCESS_LOG_PATH) as f:
        lines = f.read().splitlines()
    assert lines[0].endswith("POST /shorturls from 127.0.0.1")
    assert lines[1].endswith("GET /life1 from 127.0.0.1")

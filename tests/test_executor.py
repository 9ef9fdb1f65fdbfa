import pytest
from aiohttp import web
from aiohttp import test_utils

from stampede.executor import CounterUnavailable, HttpExecutor, OperationError, extract_counter


@pytest.fixture
async def server():
    state = {"hits": 0, "stats_calls": 0, "stats_failures": 0}

    async def hit(request):
        state["hits"] += 1
        return web.Response(text="ok")

    async def broken(request):
        return web.Response(status=500)

    async def stats(request):
        state["stats_calls"] += 1
        if state["stats_calls"] <= state["stats_failures"]:
            return web.Response(status=503, headers={"Retry-After": "0"})
        return web.json_response({"data": {"views": 1000 + state["hits"]}})

    async def garbage(request):
        return web.Response(text="not json")

    app = web.Application()
    app.router.add_get("/hit", hit)
    app.router.add_get("/broken", broken)
    app.router.add_get("/stats", stats)
    app.router.add_get("/garbage", garbage)
    srv = test_utils.TestServer(app)
    await srv.start_server()
    srv.state = state
    yield srv
    await srv.close()


def make_executor(server, target="/hit", counter="/stats", **kw):
    kw.setdefault("rate_per_sec", 500.0)
    kw.setdefault("burst", 5)
    kw.setdefault("slow_start_ramp_up_s", 0)
    kw.setdefault("backoff_base_s", 0.01)
    return HttpExecutor(
        str(server.make_url(target)),
        counter_url=str(server.make_url(counter)) if counter else None,
        counter_field="data.views",
        **kw,
    )


async def test_perform_action_success(server):
    async with make_executor(server) as ex:
        await ex.perform_action()
        await ex.perform_action()
    assert server.state["hits"] == 2


async def test_perform_action_http_error(server):
    async with make_executor(server, target="/broken") as ex:
        with pytest.raises(OperationError, match="HTTP 500"):
            await ex.perform_action()


async def test_read_counter(server):
    async with make_executor(server) as ex:
        await ex.perform_action()
        assert await ex.read_counter() == 1001


async def test_read_counter_retries_then_succeeds(server):
    server.state["stats_failures"] = 2
    async with make_executor(server, max_retries=3) as ex:
        assert await ex.read_counter() == 1000
    assert server.state["stats_calls"] == 3


async def test_read_counter_gives_up(server):
    server.state["stats_failures"] = 10
    async with make_executor(server, max_retries=2) as ex:
        with pytest.raises(CounterUnavailable, match="2 attempts"):
            await ex.read_counter()
    assert server.state["stats_calls"] == 2


async def test_read_counter_bad_payload(server):
    async with make_executor(server, counter="/garbage", max_retries=1) as ex:
        with pytest.raises(CounterUnavailable):
            await ex.read_counter()


async def test_read_counter_without_url(server):
    async with make_executor(server, counter=None) as ex:
        with pytest.raises(CounterUnavailable):
            await ex.read_counter()


async def test_requires_context_manager(server):
    ex = make_executor(server)
    with pytest.raises(RuntimeError):
        await ex.perform_action()


def test_proxies_available():
    assert HttpExecutor("http://a", proxy_url="http://proxy:3128").proxies_available == 1
    assert HttpExecutor("http://a").proxies_available == 0


@pytest.mark.parametrize(
    "payload,path,expected",
    [
        ({"count": 7}, "count", 7),
        ({"clip": {"view_count": "12"}}, "clip.view_count", 12),
        ({"items": [{"n": 3}]}, "items.0.n", 3),
    ],
)
def test_extract_counter(payload, path, expected):
    assert extract_counter(payload, path) == expected


@pytest.mark.parametrize(
    "payload,path",
    [({}, "count"), ({"count": None}, "count"), ({"count": True}, "count"), ([1], "5")],
)
def test_extract_counter_rejects(payload, path):
    with pytest.raises(CounterUnavailable):
        extract_counter(payload, path)

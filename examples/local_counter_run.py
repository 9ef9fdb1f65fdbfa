"""
Quick sanity run: a local aiohttp server counts hits, and stampede drives it.
Run: uv run examples/local_counter_run.py
"""
import asyncio

from aiohttp import web

from stampede import HttpExecutor, RunConfig, run_stampede
from stampede.rendering import LogSink, render_summary
from stampede.logging_config import setup_logging

HOST, PORT = "127.0.0.1", 8765


async def start_server() -> web.AppRunner:
    hits = {"count": 1}

    async def hit(request):
        hits["count"] += 1
        return web.Response(text="ok")

    async def stats(request):
        return web.json_response(hits)

    app = web.Application()
    app.router.add_get("/hit", hit)
    app.router.add_get("/stats", stats)
    runner = web.AppRunner(app)
    await runner.setup()
    await web.TCPSite(runner, HOST, PORT).start()
    return runner


async def main():
    setup_logging("INFO")
    server = await start_server()
    config = RunConfig(
        target_url=f"http://{HOST}:{PORT}/hit",
        counter_url=f"http://{HOST}:{PORT}/stats",
        workers=4,
        operations_per_worker=5,
        min_delay=0.1,
        max_delay=0.5,
        rate_per_sec=20.0,
        poll_interval=1.0,
        seed=7,
    )
    try:
        async with HttpExecutor(
            config.target_url,
            counter_url=config.counter_url,
            rate_per_sec=config.rate_per_sec,
        ) as executor:
            final = await run_stampede(config, executor, LogSink(config.target_url))
        print(render_summary(final))
    finally:
        await server.cleanup()


if __name__ == "__main__":
    asyncio.run(main())

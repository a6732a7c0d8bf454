"""HTTP server exposing the tracez API as JSON."""

from __future__ import annotations

import argparse
import asyncio
import random
import re
import sys
from dataclasses import replace
from datetime import datetime, timezone

from aiohttp import web

from .messages import TracezError, TracezResponse
from .model import SpanContext, SpanData, Status
from .tracez import TracezQuerier, ZPagesSpanProcessor, tracez

_NOT_FOUND = (404, "")
_U32 = re.compile(r"\+?[0-9]+")


def _parse_u32(text: str) -> int | None:
    if not _U32.fullmatch(text):
        return None
    value = int(text)
    return value if value <= 0xFFFFFFFF else None


async def _respond(pending) -> tuple[int, str]:
    try:
        response: TracezResponse = await pending
        return 200, response.to_json()
    except TracezError:
        return 500, ""


async def route(querier: TracezQuerier, path: str) -> tuple[int, str]:
    """Answer a tracez API path with an HTTP status and a JSON body."""
    if not path.startswith("/tracez/api"):
        return _NOT_FOUND
    parts = [part for part in path.split("/") if part]
    if len(parts) < 3:
        return _NOT_FOUND
    operation, args = parts[2], parts[3:]
    if operation == "aggregations":
        return await _respond(querier.aggregation())
    if operation == "running":
        return await _respond(querier.running(args[0])) if args else _NOT_FOUND
    if operation == "error":
        return await _respond(querier.error(args[0])) if args else _NOT_FOUND
    if operation == "latency":
        if len(args) < 2:
            return _NOT_FOUND
        bucket_index = _parse_u32(args[0])
        if bucket_index is None:
            return _NOT_FOUND
        return await _respond(querier.latency(bucket_index, args[1]))
    return _NOT_FOUND


async def _running_span(processor: ZPagesSpanProcessor) -> None:
    duration_ms = random.randrange(1, 6000)
    context = SpanContext(
        trace_id=random.getrandbits(128) or 1,
        span_id=random.getrandbits(64) or 1,
        trace_flags=1,
    )
    span = SpanData(
        span_context=context,
        name="running-spans",
        start_time=datetime.now(timezone.utc),
        status=Status.ok(),
    )
    processor.on_start(span)
    await asyncio.sleep(duration_ms / 1000)
    print(f"The span slept for {duration_ms} ms")
    processor.on_end(replace(span, end_time=datetime.now(timezone.utc)))


def _build_app(
    querier: TracezQuerier, processor: ZPagesSpanProcessor | None = None
) -> web.Application:
    async def handler(request: web.Request) -> web.Response:
        if processor is not None and request.path == "/running":
            await _running_span(processor)
            return web.Response(status=200)
        status, body = await route(querier, request.path)
        if not body:
            return web.Response(status=status)
        return web.Response(status=status, text=body, content_type="application/json")

    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", handler)
    return app


def create_app(querier: TracezQuerier) -> web.Application:
    """An application that serves every tracez API path."""
    return _build_app(querier)


async def _serve(host: str, port: int, sample_size: int) -> None:
    processor, querier = tracez(sample_size)
    runner = web.AppRunner(_build_app(querier, processor))
    await runner.setup()
    try:
        site = web.TCPSite(runner, host, port)
        await site.start()
        print(f"Listening on {host}:{port}")
        await asyncio.Event().wait()
    finally:
        querier.close()
        await runner.cleanup()


def main(argv: list[str] | None = None) -> int:
    """Run the tracez server with a demo endpoint at /running."""
    parser = argparse.ArgumentParser(description="Serve tracez span aggregations.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--sample-size", type=int, default=5)
    args = parser.parse_args(argv)
    try:
        asyncio.run(_serve(args.host, args.port, args.sample_size))
    except KeyboardInterrupt:
        return 0
    except OSError as err:
        print(f"server error: {err}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
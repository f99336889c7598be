"""HTTP server for the pairstream chat endpoint.

Accepts the browser client's chat requests, runs the summary / context /
generation pipeline and streams the result back in the data-stream line
format.

Usage:
    pairstream -c pairstream.yaml serve --port 5173
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ..config import load_config
from ..core.annotations import AnnotationEmitter
from ..core.models import ProviderRegistry
from ..pipeline import ChatPipeline, PreparedChat
from ..types import ChatRequest, PairstreamConfig
from .framer import ThoughtTagFramer
from .helpers import credentials_from_cookies, pre_stream_status
from .metrics import ProxyMetrics
from .wire import ErrorEvent, StreamEvent

logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    "Connection": "keep-alive",
    "Cache-Control": "no-cache",
    "Text-Encoding": "chunked",
}

STATUS_TEXT = {
    400: "Bad Request",
    401: "Invalid or missing API key",
    500: "Internal Server Error",
}


async def stream_chat(pipeline: ChatPipeline, prepared: PreparedChat) -> AsyncGenerator[str, None]:
    """Run the pipeline in a task and yield framed wire lines as they arrive.

    Closing the generator (client disconnect) cancels the pipeline task.
    """
    queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()
    emitter = AnnotationEmitter(queue.put_nowait)
    framer = ThoughtTagFramer()

    async def produce() -> None:
        try:
            await pipeline.run(prepared, emitter)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Chat stream failed")
            queue.put_nowait(ErrorEvent(message=str(e)))
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(produce())
    try:
        while True:
            event = await queue.get()
            if event is None:
                break
            for line in framer.transform(event.encode()):
                yield line
        for line in framer.flush():
            yield line
    finally:
        if not task.done():
            logger.info("Client disconnected, cancelling generation")
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task


def _error_response(status: int, message: str) -> JSONResponse:
    return JSONResponse(
        {"error": True, "message": message, "statusText": STATUS_TEXT.get(status, "Error")},
        status_code=status,
    )


def create_app(
    config: PairstreamConfig | None = None,
    config_path: str | None = None,
    *,
    pipeline: ChatPipeline | None = None,
    metrics: ProxyMetrics | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: Loaded config; when omitted it is loaded from *config_path*
            or discovered from the working directory.
        pipeline: Prebuilt pipeline (tests inject one with fake backends).
        metrics: Shared metrics collector.
    """
    if pipeline is not None:
        config = pipeline.config
    elif config is None:
        config = load_config(config_path)

    client = httpx.AsyncClient(timeout=httpx.Timeout(120.0, connect=10.0))
    if pipeline is None:
        pipeline = ChatPipeline(
            config,
            registry=ProviderRegistry(config, client=client),
            metrics=metrics or ProxyMetrics(),
        )
    elif metrics is not None:
        pipeline.metrics = metrics

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        yield
        await client.aclose()

    app = FastAPI(title="pairstream", lifespan=lifespan)
    app.state.pipeline = pipeline

    @app.post("/api/chat")
    async def chat(request: Request):
        try:
            body = await request.json()
            chat_request = ChatRequest.from_body(body)
        except ValueError as e:
            logger.warning("Rejected malformed chat request: %s", e)
            return _error_response(400, str(e))

        credentials = credentials_from_cookies(request.headers.get("cookie"))

        try:
            prepared = await pipeline.prepare(chat_request, credentials)
        except Exception as e:
            status = pre_stream_status(e)
            logger.error("Chat request failed before streaming (%d): %s", status, e)
            pipeline.metrics.record({"type": "error", "message": str(e), "status": status})
            return _error_response(status, str(e))

        return StreamingResponse(
            stream_chat(pipeline, prepared),
            media_type="text/event-stream; charset=utf-8",
            headers=STREAM_HEADERS,
        )

    @app.get("/api/metrics")
    async def get_metrics():
        return JSONResponse(pipeline.metrics.snapshot())

    return app

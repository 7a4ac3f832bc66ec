"""Stdio and HTTP transports for the MCP server."""

import contextlib
import logging
import signal
import sys
import threading
import time
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

import anyio
import uvicorn
from anyio.from_thread import BlockingPortal
from anyio.streams.memory import MemoryObjectSendStream
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from logic_mcp.config import Settings
from logic_mcp.engine import SessionEngine
from logic_mcp.errors import ErrorCode, LogicMCPError, ProtocolError, SessionLimitError
from logic_mcp.protocol import JSONRPCRequest, McpServer, decode_request, encode, error_response
from logic_mcp.solver import find_swipl

logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"

EngineFactory = Callable[[], SessionEngine]


async def serve_frames(
    server: McpServer,
    frames: AsyncIterable[str],
    send: Callable[[str], Awaitable[None]],
) -> None:
    """Answer newline-delimited JSON-RPC frames one at a time, in order.

    A frame that cannot be decoded gets a parse error response and the loop
    moves on to the next one.
    """
    async for frame in frames:
        if not frame.strip():
            continue
        response = await server.handle_frame(frame)
        if response is not None:
            await send(encode(response))


async def _cancel_on_signal(scope: anyio.CancelScope) -> None:
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for signum in signals:
            logger.info("Received %s, shutting down gracefully...", signal.Signals(signum).name)
            scope.cancel()
            return


def _pump_stdin(portal: BlockingPortal, lines: MemoryObjectSendStream[str]) -> None:
    """Feed stdin lines into ``lines`` from a daemon thread.

    A pending ``readline`` must not keep the process alive after shutdown,
    which rules out the event loop's own worker threads.
    """
    try:
        for line in sys.stdin:
            portal.call(lines.send, line)
        portal.call(lines.aclose)
    except (anyio.BrokenResourceError, anyio.ClosedResourceError, RuntimeError):
        # The server stopped reading, or the portal is already shut down.
        return


async def serve_stdio(settings: Settings) -> None:
    """Serve one session over stdin/stdout until EOF, SIGINT or SIGTERM.

    Raises:
        SolverNotFoundError: if the engine cannot be created.
    """
    engine = SessionEngine.create(settings)
    server = McpServer(engine, settings.timeout)
    stdout = anyio.wrap_file(sys.stdout)
    send_lines, receive_lines = anyio.create_memory_object_stream(max_buffer_size=16)

    async def send(line: str) -> None:
        await stdout.write(line + "\n")
        await stdout.flush()

    logger.info("[%s] serving MCP over stdio", engine.session_id)
    try:
        async with BlockingPortal() as portal, anyio.create_task_group() as tg:
            tg.start_soon(_cancel_on_signal, tg.cancel_scope)
            threading.Thread(
                target=_pump_stdin, args=(portal, send_lines), name="stdin-reader", daemon=True
            ).start()
            async with receive_lines:
                await serve_frames(server, receive_lines, send)
            tg.cancel_scope.cancel()
    finally:
        engine.close()


@dataclass
class _Session:
    server: McpServer
    last_activity: float

    def touch(self, now: float) -> None:
        self.last_activity = now


class SessionStore:
    """Engines for stateful HTTP sessions, keyed by session id.

    Sessions idle for longer than ``idle_timeout`` seconds are closed the next
    time the store is used. Once ``max_sessions`` are open, ``open`` refuses
    new ones until some close or expire.
    """

    def __init__(
        self,
        factory: EngineFactory,
        timeout: Optional[float] = None,
        idle_timeout: float = 1800.0,
        max_sessions: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory
        self._timeout = timeout
        self._idle_timeout = idle_timeout
        self._max_sessions = max_sessions
        self._clock = clock
        self._sessions: dict[str, _Session] = {}

    def open(self) -> McpServer:
        """Start a new session.

        Raises:
            SessionLimitError: if ``max_sessions`` are already open.
        """
        self.cleanup_expired()
        if len(self._sessions) >= self._max_sessions:
            raise SessionLimitError(self._max_sessions)
        server = McpServer(self._factory(), self._timeout)
        self._sessions[server.engine.session_id] = _Session(server, self._clock())
        return server

    def get(self, session_id: str) -> Optional[McpServer]:
        self.cleanup_expired()
        session = self._sessions.get(session_id)
        if session is None:
            return None
        session.touch(self._clock())
        return session.server

    def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.server.engine.close()
        return True

    def cleanup_expired(self) -> int:
        """Close sessions idle for longer than the idle timeout."""
        deadline = self._clock() - self._idle_timeout
        expired = [sid for sid, s in self._sessions.items() if s.last_activity < deadline]
        for session_id in expired:
            self.close(session_id)
        if expired:
            logger.info("Closed %d idle session(s)", len(expired))
        return len(expired)

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)

    def __len__(self) -> int:
        return len(self._sessions)


class RPCResponse(JSONResponse):
    """JSON body encoded like the stdio wire, so lone surrogates are escaped."""

    def render(self, content: Any) -> bytes:
        return encode(content).encode("ascii")


def _reply(response: Optional[dict[str, Any]], headers: Optional[dict[str, str]] = None) -> Response:
    if response is None:
        return Response(status_code=202, headers=headers)
    return RPCResponse(response, headers=headers)


def _rejection(
    request_id: Any, code: ErrorCode, message: str, data: Any = None, status_code: int = 200
) -> RPCResponse:
    error = ProtocolError(code, message, data)
    return RPCResponse(error_response(request_id, error), status_code=status_code)


def create_http_app(settings: Settings, engine_factory: Optional[EngineFactory] = None) -> Starlette:
    """Build the HTTP application.

    In the default stateless mode every POST gets a brand new engine that is
    closed once the response is ready, so no knowledge base outlives a call.
    With ``settings.stateful`` an ``initialize`` call opens a session whose id
    is returned in the ``Mcp-Session-Id`` header.
    """
    factory = engine_factory or (lambda: SessionEngine.create(settings))
    sessions = None
    if settings.stateful:
        sessions = SessionStore(
            factory,
            settings.timeout,
            idle_timeout=settings.session_idle_timeout,
            max_sessions=settings.max_sessions,
        )

    async def health(request: Request) -> JSONResponse:
        return JSONResponse({"status": "healthy", "service": "logic-mcp"})

    async def handle_stateless(rpc: JSONRPCRequest) -> Response:
        try:
            engine = factory()
        except LogicMCPError as e:
            logger.error("Could not create engine: %s", e)
            return _rejection(rpc.id, ErrorCode.INTERNAL_ERROR, "Engine unavailable", str(e))

        async with engine:
            response = await McpServer(engine, settings.timeout).handle(rpc)
        return _reply(response)

    async def handle_stateful(request: Request, rpc: JSONRPCRequest) -> Response:
        if rpc.method == "initialize":
            try:
                server = sessions.open()
            except SessionLimitError as e:
                logger.warning("%s", e)
                return _rejection(
                    rpc.id, ErrorCode.INTERNAL_ERROR, "Too many sessions", str(e), status_code=503,
                )
            except LogicMCPError as e:
                logger.error("Could not create engine: %s", e)
                return _rejection(rpc.id, ErrorCode.INTERNAL_ERROR, "Engine unavailable", str(e))
            response = await server.handle(rpc)
            return _reply(response, headers={SESSION_HEADER: server.engine.session_id})

        session_id = request.headers.get(SESSION_HEADER)
        if not session_id:
            return _rejection(
                rpc.id, ErrorCode.INVALID_REQUEST, "Bad Request",
                f"Missing {SESSION_HEADER} header", status_code=400,
            )
        server = sessions.get(session_id)
        if server is None:
            return _rejection(
                rpc.id, ErrorCode.INVALID_REQUEST, "Session not found", session_id, status_code=404,
            )
        return _reply(await server.handle(rpc))

    async def mcp_post(request: Request) -> Response:
        body = await request.body()
        try:
            rpc = decode_request(body)
        except ProtocolError as e:
            return RPCResponse(error_response(e.request_id, e))

        if sessions is None:
            return await handle_stateless(rpc)
        return await handle_stateful(request, rpc)

    async def mcp_delete(request: Request) -> Response:
        session_id = request.headers.get(SESSION_HEADER, "")
        if sessions is None or not sessions.close(session_id):
            return Response(status_code=404)
        return Response(status_code=204)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        yield
        if sessions is not None:
            sessions.close_all()

    routes = [
        Route("/mcp", mcp_post, methods=["POST"]),
        Route("/mcp", mcp_delete, methods=["DELETE"]),
        Route("/health", health, methods=["GET"]),
    ]
    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.sessions = sessions
    return app


def run_http(settings: Settings) -> None:
    """Serve over HTTP with uvicorn.

    The solver is looked up before binding so a missing swipl fails at
    startup instead of on the first request.
    """
    find_swipl(settings.swipl_path)
    mode = "stateful" if settings.stateful else "stateless"
    logger.info("Starting %s HTTP server on %s:%d", mode, settings.host, settings.port)
    uvicorn.run(
        create_http_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )

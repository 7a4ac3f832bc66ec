"""JSON-RPC 2.0 request handling for the MCP methods the server supports.

Three kinds of failure are kept apart here:

* protocol errors (bad frame, unknown method, bad params) become JSON-RPC
  error objects;
* tool errors (bad arguments) are successful responses whose result has
  ``isError`` set;
* query outcomes (goal not proven, solver crashed) are ordinary results.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from logic_mcp import resources
from logic_mcp.engine import SessionEngine
from logic_mcp.errors import ErrorCode, ProtocolError, ResourceNotFoundError, UnknownToolError
from logic_mcp.tools import build_registry

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "logic-mcp"
SERVER_VERSION = "0.1.0"

RequestId = Optional[Union[str, int]]


class JSONRPCRequest(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")

    jsonrpc: str = JSONRPC_VERSION
    id: RequestId = None
    method: str
    params: Any = None

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set


def _best_effort_id(data: Any) -> RequestId:
    if isinstance(data, dict):
        request_id = data.get("id")
        if isinstance(request_id, (str, int)) and not isinstance(request_id, bool):
            return request_id
    return None


def decode_request(frame: Union[str, bytes, dict]) -> JSONRPCRequest:
    """Decode one frame into a request.

    Raises:
        ProtocolError: ``PARSE_ERROR`` carrying whatever id could be salvaged.
    """
    data = frame
    if isinstance(frame, (str, bytes)):
        try:
            data = json.loads(frame)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(ErrorCode.PARSE_ERROR, "Parse error", str(e)) from None

    if not isinstance(data, dict):
        raise ProtocolError(ErrorCode.PARSE_ERROR, "Parse error", "request must be a JSON object")

    try:
        return JSONRPCRequest.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ProtocolError(
            ErrorCode.PARSE_ERROR,
            "Parse error",
            f"invalid request field(s): {fields}",
            request_id=_best_effort_id(data),
        ) from None


def success_response(request_id: RequestId, result: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_response(request_id: RequestId, error: ProtocolError) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error.to_dict()}


def encode(message: dict[str, Any]) -> str:
    return json.dumps(message, separators=(",", ":"), default=str)


def _object_params(request: JSONRPCRequest, expected: str) -> dict[str, Any]:
    if not isinstance(request.params, dict):
        raise ProtocolError(ErrorCode.INVALID_PARAMS, "Invalid params", f"Expected object with {expected}")
    return request.params


class McpServer:
    """Answers MCP requests for one session engine."""

    def __init__(self, engine: SessionEngine, timeout: Optional[float] = None):
        self.engine = engine
        self.registry = build_registry(engine, timeout)
        self._methods: dict[str, Callable[[JSONRPCRequest], Awaitable[Any]]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
            "resources/list": self._resources_list,
            "resources/read": self._resources_read,
        }

    async def handle_frame(self, frame: Union[str, bytes, dict]) -> Optional[dict[str, Any]]:
        """Decode and answer one frame. Returns None for notifications."""
        try:
            request = decode_request(frame)
        except ProtocolError as e:
            logger.warning("Rejected frame: %s", e.data)
            return error_response(e.request_id, e)
        return await self.handle(request)

    async def handle(self, request: JSONRPCRequest) -> Optional[dict[str, Any]]:
        try:
            response = success_response(request.id, await self._dispatch(request))
        except ProtocolError as e:
            response = error_response(request.id, e)
        except Exception as e:
            logger.exception("Request %s (%s) failed", request.id, request.method)
            response = error_response(
                request.id, ProtocolError(ErrorCode.INTERNAL_ERROR, "Internal error", str(e))
            )

        if request.is_notification:
            return None
        return response

    async def _dispatch(self, request: JSONRPCRequest) -> Any:
        method = self._methods.get(request.method)
        if method is None:
            if request.method.startswith("notifications/"):
                return None
            raise ProtocolError(
                ErrorCode.METHOD_NOT_FOUND, "Method not found", f"Unknown method: {request.method}"
            )
        return await method(request)

    async def _initialize(self, request: JSONRPCRequest) -> dict[str, Any]:
        client = request.params.get("clientInfo") if isinstance(request.params, dict) else None
        name = client.get("name") if isinstance(client, dict) else None
        logger.info("[%s] initialize from %s", self.engine.session_id, name or "unknown client")
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {
                "tools": {"listChanged": True},
                "resources": {"subscribe": False, "listChanged": False},
            },
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
        }

    async def _ping(self, request: JSONRPCRequest) -> dict[str, Any]:
        return {}

    async def _tools_list(self, request: JSONRPCRequest) -> dict[str, Any]:
        return {"tools": self.registry.definitions()}

    async def _tools_call(self, request: JSONRPCRequest) -> dict[str, Any]:
        params = _object_params(request, "'name' and 'arguments'")
        name = params.get("name")
        if not isinstance(name, str):
            raise ProtocolError(ErrorCode.INVALID_PARAMS, "Invalid params", "Missing or invalid 'name' field")

        try:
            result = await self.registry.dispatch(name, params.get("arguments"))
        except UnknownToolError as e:
            raise ProtocolError(ErrorCode.INTERNAL_ERROR, "Tool execution error", str(e)) from None
        return result.to_dict()

    async def _resources_list(self, request: JSONRPCRequest) -> dict[str, Any]:
        return {"resources": resources.list_resources()}

    async def _resources_read(self, request: JSONRPCRequest) -> dict[str, Any]:
        params = _object_params(request, "'uri'")
        uri = params.get("uri")
        if not isinstance(uri, str):
            raise ProtocolError(ErrorCode.INVALID_PARAMS, "Invalid params", "Missing or invalid 'uri' field")

        try:
            contents = resources.read_resource(uri)
        except ResourceNotFoundError as e:
            raise ProtocolError(ErrorCode.INTERNAL_ERROR, "Resource not found", str(e)) from None
        return {"contents": [contents]}

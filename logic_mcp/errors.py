"""Exception types shared across the logic MCP server."""

from enum import Enum, IntEnum
from typing import Any, Optional


class LogicMCPError(Exception):
    """Base class for every error raised by logic_mcp."""


class ConfigError(LogicMCPError):
    """Invalid configuration value."""


class EngineClosedError(LogicMCPError):
    def __init__(self, message: str = "engine is closed"):
        super().__init__(message)


class SolverNotFoundError(LogicMCPError):
    """No usable SWI-Prolog executable could be located."""


class SyntaxReason(str, Enum):
    EMPTY_INPUT = "empty_input"
    MISSING_TERMINATOR = "missing_terminator"
    UNBALANCED_PARENS = "unbalanced_parens"
    UNBALANCED_BRACKETS = "unbalanced_brackets"


class PrologSyntaxError(LogicMCPError):
    """Structural problem found before the text ever reaches the solver."""

    def __init__(self, reason: SyntaxReason, message: str):
        super().__init__(message)
        self.reason = reason


class UnknownToolError(LogicMCPError):
    def __init__(self, name: str):
        super().__init__(f"unknown tool: {name}")
        self.name = name


class ResourceNotFoundError(LogicMCPError):
    def __init__(self, uri: str):
        super().__init__(f"unknown resource URI: {uri}")
        self.uri = uri


class SessionLimitError(LogicMCPError):
    def __init__(self, limit: int):
        super().__init__(f"session limit reached ({limit} open)")
        self.limit = limit


class ErrorCode(IntEnum):
    """JSON-RPC 2.0 reserved error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


class ProtocolError(LogicMCPError):
    """Error that is reported to the peer as a JSON-RPC error object."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        data: Any = None,
        request_id: Any = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data
        self.request_id = request_id

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": int(self.code), "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error

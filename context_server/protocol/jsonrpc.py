"""JSON-RPC 2.0 envelopes, error codes and method classification."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict

JSONRPC_VERSION = "2.0"

# Standard error codes
PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class MethodKind(Enum):
    """Closed set of methods the server understands."""

    INITIALIZE = "initialize"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"
    # Optional capabilities: always answered with an empty list
    PROMPTS_LIST = "prompts/list"
    RESOURCES_LIST = "resources/list"
    UNKNOWN = ""

    @classmethod
    def from_method(cls, method: str) -> "MethodKind":
        for kind in cls:
            if kind is not cls.UNKNOWN and kind.value == method:
                return kind
        return cls.UNKNOWN

    @property
    def is_optional_list(self) -> bool:
        return self in (MethodKind.PROMPTS_LIST, MethodKind.RESOURCES_LIST)


# Result key for each optional list method
OPTIONAL_LIST_KEYS = {
    MethodKind.PROMPTS_LIST: "prompts",
    MethodKind.RESOURCES_LIST: "resources",
}


class JsonRpcRequest(BaseModel):
    """
    Inbound JSON-RPC envelope.

    Whether ``id`` was sent at all is read from ``model_fields_set``, so an
    explicit ``"id": null`` still counts as a request.
    """

    jsonrpc: Literal["2.0"]
    method: str
    id: Any = None
    params: Optional[Union[Dict[str, Any], List[Any]]] = None

    model_config = ConfigDict(extra="ignore")

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set

    @property
    def kind(self) -> MethodKind:
        return MethodKind.from_method(self.method)


def make_response(request_id: Any, result: Any) -> Dict[str, Any]:
    """Build a success response envelope."""
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def make_error(
    request_id: Any,
    code: int,
    message: str,
    data: Optional[Any] = None,
) -> Dict[str, Any]:
    """Build an error response envelope."""
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}
